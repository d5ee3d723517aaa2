"""
Utilities for keeping native audio and gRPC noise off the console.
"""
import os
from functools import wraps


# Quiet JACK/ALSA probing and Google Cloud gRPC chatter
os.environ.setdefault("JACK_NO_START_SERVER", "1")
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")


def with_suppressed_audio_warnings(func):
    """
    Decorator that silences native stderr output during a function call.

    PortAudio prints ALSA/JACK device scan errors straight to file descriptor 2,
    so this redirects the descriptor rather than sys.stderr.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            original_stderr_fd = os.dup(2)
            null_fd = os.open(os.devnull, os.O_WRONLY)
            os.dup2(null_fd, 2)
            os.close(null_fd)
        except OSError:
            original_stderr_fd = None

        try:
            return func(*args, **kwargs)
        finally:
            if original_stderr_fd is not None:
                os.dup2(original_stderr_fd, 2)
                os.close(original_stderr_fd)

    return wrapper
