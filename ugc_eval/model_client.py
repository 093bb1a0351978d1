"""
Video-analysis model client (Replicate HTTP API).

The hosted model's accepted input names have changed over time, so a call
first reads the model's published input schema and builds a best-guess input
from it. If the provider rejects that input as containing unknown parameters,
a fixed list of previously-working input shapes is tried in order before the
call gives up. Audio generation is always disabled; only text is needed.
"""

from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from .config import ModelServiceConfig, get_model_config
from .pipeline.errors import ModelServiceError
from .prompts import EVALUATOR_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

AUDIO_OPTION_KEYS = ("generate_audio", "use_audio_in_video")
TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}
REJECTION_MARKERS = ("not allowed", "unexpected", "invalid input", "additional properties")
RETRYABLE_HTTP_STATUSES = {408, 429, 500, 502, 503, 504}

# Input shapes known to have worked against earlier model versions, in the
# order they are tried. "{video}" / "{prompt}" are filled per call.
FALLBACK_INPUT_SHAPES: Tuple[Dict[str, Any], ...] = (
    {"video": "{video}", "prompt": "{prompt}", "generate_audio": False},
    {"video": "{video}", "prompt": "{prompt}"},
    {"video_url": "{video}", "prompt": "{prompt}"},
    {"media": "{video}", "prompt": "{prompt}"},
    {"video": "{video}", "text": "{prompt}"},
)


class ParameterRejectedError(Exception):
    """Provider refused the input because of its parameter names/types."""


def normalize_output(output: Any) -> str:
    """Turn whatever the model returned into a single text blob."""
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, Mapping):
        if output.get("text") is not None:
            return str(output["text"])
        return json.dumps(output, ensure_ascii=False)
    if isinstance(output, (list, tuple)):
        return "\n".join(str(item) for item in output)
    return json.dumps(output, ensure_ascii=False, default=str)


def disable_audio(inputs: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of the input with every audio-generation option forced off."""
    sanitized = dict(inputs)
    for key in AUDIO_OPTION_KEYS:
        if key in sanitized:
            sanitized[key] = False
    return sanitized


def fill_shape(shape: Mapping[str, Any], video_url: str, prompt: str) -> Dict[str, Any]:
    filled: Dict[str, Any] = {}
    for key, value in shape.items():
        if value == "{video}":
            filled[key] = video_url
        elif value == "{prompt}":
            filled[key] = prompt
        else:
            filled[key] = value
    return disable_audio(filled)


def build_input_from_schema(
    schema_properties: Mapping[str, Any],
    video_url: str,
    prompt: str,
) -> Dict[str, Any]:
    """
    Best-guess model input using the parameter names the schema advertises.
    """
    keys = list(schema_properties.keys())
    inputs: Dict[str, Any] = {}

    video_key = next((k for k in keys if k.lower() == "video"), None)
    if video_key is None:
        video_key = next(
            (
                k for k in keys
                if "video" in k.lower()
                and "audio" not in k.lower()
                and "generate" not in k.lower()
            ),
            "video",
        )
    inputs[video_key] = video_url

    prompt_key = next((k for k in keys if k.lower() == "prompt"), None)
    if prompt_key is None:
        prompt_key = next(
            (
                k for k in keys
                if k != "system_prompt"
                and any(marker in k.lower() for marker in ("prompt", "text", "question"))
            ),
            None,
        )
    if prompt_key:
        inputs[prompt_key] = prompt

    if "system_prompt" in schema_properties:
        inputs["system_prompt"] = EVALUATOR_SYSTEM_PROMPT

    for key in AUDIO_OPTION_KEYS:
        if key in schema_properties:
            inputs[key] = False

    # Schema-typed booleans must be real booleans.
    for key, value in list(inputs.items()):
        prop = schema_properties.get(key)
        if isinstance(prop, Mapping) and prop.get("type") == "boolean" and not isinstance(value, bool):
            inputs[key] = str(value).lower() == "true"

    return disable_audio(inputs)


class VideoModelClient:
    """
    Thin client around the Replicate predictions API for one video model.

    Usage:
        client = VideoModelClient()
        text = client.evaluate_video("https://cdn.example.com/v.mp4", prompt)
    """

    def __init__(
        self,
        config: Optional[ModelServiceConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or get_model_config()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_token}",
                "Content-Type": "application/json",
            }
        )

    # -- schema discovery -------------------------------------------------

    def discover_input_schema(self) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        """
        Return (latest_version_id, input_properties) or (None, None) when the
        model metadata cannot be read.
        """
        cfg = self.config
        try:
            model = self._get_json(f"{cfg.api_base}/models/{cfg.model_owner}/{cfg.model_name}")
            latest = model.get("latest_version") or {}
            version_id = latest.get("id")
            schema = latest.get("openapi_schema")
            if version_id and not schema:
                version = self._get_json(
                    f"{cfg.api_base}/models/{cfg.model_owner}/{cfg.model_name}/versions/{version_id}"
                )
                schema = version.get("openapi_schema")
            properties = (
                ((schema or {}).get("components") or {}).get("schemas", {}).get("Input", {}).get("properties")
            )
            logger.info("Video model %s latest version: %s", cfg.model_ref, version_id)
            return version_id, properties or None
        except (requests.RequestException, ValueError, ModelServiceError, ParameterRejectedError) as exc:
            logger.warning("Could not read schema for %s: %s", cfg.model_ref, str(exc)[:200])
            return None, None

    # -- invocation -------------------------------------------------------

    def evaluate_video(self, video_url: str, prompt: str) -> str:
        """
        Run the model on a video and return its raw text output.

        Raises:
            ModelServiceError: On provider failure or once every fallback
                input shape has been rejected
        """
        version_id, properties = self.discover_input_schema()
        if properties:
            first_input = build_input_from_schema(properties, video_url, prompt)
        else:
            first_input = fill_shape(FALLBACK_INPUT_SHAPES[0], video_url, prompt)
            version_id = None

        logger.debug("Using input parameters: %s", sorted(first_input.keys()))
        try:
            return normalize_output(self._predict(first_input, version_id))
        except ParameterRejectedError as exc:
            logger.warning("Model rejected input parameters (%s); trying fallback shapes", exc)
            last_error: Exception = exc

        attempts = len(FALLBACK_INPUT_SHAPES)
        for index, shape in enumerate(FALLBACK_INPUT_SHAPES, start=1):
            inputs = fill_shape(shape, video_url, prompt)
            if inputs == first_input:
                continue
            try:
                output = self._predict(inputs, version_id)
                logger.info(
                    "Fallback input shape %d/%d accepted: %s",
                    index, attempts, sorted(inputs.keys()),
                )
                return normalize_output(output)
            except ParameterRejectedError as exc:
                logger.debug("Fallback input shape %d/%d rejected: %s", index, attempts, exc)
                last_error = exc

        raise ModelServiceError(
            "Failed to call the video model; it may not support these parameters. "
            f"Error: {last_error}",
            code="model_parameters_rejected",
            cause=last_error,
            recoverable=True,
        )

    def _predict(self, inputs: Dict[str, Any], version_id: Optional[str]) -> Any:
        cfg = self.config
        if version_id:
            url = f"{cfg.api_base}/predictions"
            body: Dict[str, Any] = {"version": version_id, "input": inputs}
        else:
            url = f"{cfg.api_base}/models/{cfg.model_owner}/{cfg.model_name}/predictions"
            body = {"input": inputs}

        prediction = self._post_json(url, body, headers={"Prefer": "wait"})
        prediction = self._wait_for(prediction)

        status = prediction.get("status")
        if status == "succeeded":
            return prediction.get("output")

        error = str(prediction.get("error") or f"prediction {status}")
        if _is_rejection(error):
            raise ParameterRejectedError(error)
        raise ModelServiceError(
            f"Video model prediction {status}: {error}",
            code="model_prediction_failed",
        )

    def _wait_for(self, prediction: Dict[str, Any]) -> Dict[str, Any]:
        deadline = time.monotonic() + self.config.max_wait
        while prediction.get("status") not in TERMINAL_STATUSES:
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                raise ModelServiceError(
                    "Prediction is still running but has no poll URL",
                    code="model_prediction_incomplete",
                    recoverable=True,
                )
            if time.monotonic() >= deadline:
                raise ModelServiceError(
                    f"Prediction {prediction.get('id')} did not finish within {self.config.max_wait:.0f}s",
                    code="model_timeout",
                    recoverable=True,
                )
            time.sleep(self.config.poll_interval)
            prediction = self._get_json(poll_url)
        return prediction

    # -- HTTP helpers -----------------------------------------------------

    def _get_json(self, url: str) -> Dict[str, Any]:
        return self._request("GET", url)

    def _post_json(
        self, url: str, body: Mapping[str, Any], headers: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        return self._request("POST", url, json=dict(body), headers=dict(headers or {}))

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.session.request(method, url, timeout=self.config.request_timeout, **kwargs)
        except requests.Timeout as exc:
            raise ModelServiceError(
                f"Video model request timed out: {exc}", code="model_timeout", cause=exc, recoverable=True
            ) from exc
        except requests.RequestException as exc:
            raise ModelServiceError(
                f"Video model request failed: {exc}", code="model_unreachable", cause=exc, recoverable=True
            ) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            if response.status_code == 422 or _is_rejection(detail):
                raise ParameterRejectedError(detail)
            if response.status_code in (401, 403):
                raise ModelServiceError(
                    f"Video model authentication failed: {detail}", code="model_auth_failed"
                )
            raise ModelServiceError(
                f"Video model returned HTTP {response.status_code}: {detail}",
                code=f"model_http_{response.status_code}",
                recoverable=response.status_code in RETRYABLE_HTTP_STATUSES,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ModelServiceError(
                "Video model returned a non-JSON response", code="model_bad_response", cause=exc
            ) from exc


def _is_rejection(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in REJECTION_MARKERS)


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "")[:500]
    if isinstance(payload, Mapping):
        detail = payload.get("detail") or payload.get("error") or payload.get("title")
        if detail:
            return str(detail)[:500]
    return json.dumps(payload)[:500]


@lru_cache(maxsize=1)
def _get_default_client() -> VideoModelClient:
    return VideoModelClient()


def evaluate_video(video_url: str, prompt: str) -> str:
    """Module-level convenience wrapper around the shared client."""
    return _get_default_client().evaluate_video(video_url, prompt)


__all__ = [
    "FALLBACK_INPUT_SHAPES",
    "VideoModelClient",
    "build_input_from_schema",
    "disable_audio",
    "evaluate_video",
    "normalize_output",
]
