"""
Vertex AI REST client for LLM interactions.
"""
import json
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class LLMRequestError(RuntimeError):
    """The LLM endpoint could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class VertexRestClient:
    """REST-based client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self._token = None
        self.timeout = timeout

    def _refresh_token(self):
        """Refresh the OAuth token for API calls."""
        if self.credentials_json:
            creds = service_account.Credentials.from_service_account_file(
                self.credentials_json,
                scopes=_SCOPES,
            )
        else:
            creds, _ = google.auth.default(scopes=_SCOPES)

        auth_req = google.auth.transport.requests.Request()
        creds.refresh(auth_req)
        self._token = creds.token

    def _ensure_token(self):
        """Ensure we have a valid token, refreshing if needed."""
        if not self._token:
            try:
                self._refresh_token()
            except google.auth.exceptions.GoogleAuthError as e:
                raise LLMRequestError(f"Vertex authentication failed: {e}") from e

    def generate_chat(
        self,
        messages: List[Dict[str, str]],
        system_instruction: Optional[str] = None,
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ) -> str:
        """
        Generate the next model turn for a multi-turn conversation.

        Args:
            messages: Ordered {"role": "user"|"model", "text": ...} entries
            system_instruction: Optional system prompt
            temperature: Sampling temperature
            max_output_tokens: Output token cap

        Returns:
            Text of the first candidate
        """
        contents = [
            {"role": m["role"], "parts": [{"text": m["text"]}]}
            for m in messages
        ]
        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return self._post_generate(body)

    def _post_generate(self, body: Dict[str, Any], retry_auth: bool = True) -> str:
        self._ensure_token()
        url = f"{self.base_url}/{self.model_resource}:generateContent"
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise LLMRequestError(f"Vertex request failed: {e}") from e

        if resp.status_code == 401 and retry_auth:
            # Token expired; refresh once and retry
            self._token = None
            return self._post_generate(body, retry_auth=False)
        if resp.status_code >= 400:
            raise LLMRequestError(f"Vertex REST error {resp.status_code}: {resp.text}", resp.status_code)

        try:
            resp_json = resp.json()
        except ValueError as e:
            raise LLMRequestError(f"Vertex returned non-JSON body: {resp.text[:200]}") from e
        return self._parse_response_text(resp_json)

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Parse response JSON to extract text content.
        Tries Vertex schema first, then falls back to alternatives.
        """
        cands = resp_json.get("candidates", [])
        if cands:
            content = cands[0].get("content", {})
            parts = content.get("parts", [])
            if parts and isinstance(parts, list):
                texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
                if texts:
                    return "".join(texts)
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                return content["text"]

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        logger.warning("Unexpected Vertex response shape: %s", json.dumps(resp_json, separators=(",", ":"))[:500])
        return ""
