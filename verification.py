import json
import logging
import math
import re

import requests

logger = logging.getLogger(__name__)

IDLE = "idle"
VERIFYING = "verifying"
SUCCESS = "success"
FAILURE = "failure"

WASTE_TYPES = ("plastic", "paper", "glass", "metal", "organic")
QUANTITY_RE = re.compile(r"^\d+\.?\d*\s*(kg|l)\Z", re.IGNORECASE | re.ASCII)
FENCE_RE = re.compile(r"```json\n?|\n?```")

VERIFICATION_PROMPT = """Analyze this waste image and respond ONLY with a valid JSON object in exactly this format, no other text:
{
  "wasteType": "plastic",
  "quantity": "2.5 kg",
  "confidence": 0.95
}

Notes:
- wasteType must be one of: plastic, paper, glass, metal, organic
- quantity must include a number and unit (kg or L)
- confidence must be a number between 0 and 1
- Do not include any explanations or additional text
- Ensure the response is valid JSON"""

GENERATION_CONFIG = {
    "temperature": 0.1,
    "topK": 32,
    "topP": 1,
    "maxOutputTokens": 4096,
}


class InvalidTransition(ValueError):
    pass


class VerificationError(Exception):
    """The classification reply was not a valid verification result."""


class ClassifierError(Exception):
    """The classification service could not be reached or refused the call."""


_TRANSITIONS = {
    (IDLE, "start"): VERIFYING,
    (VERIFYING, "succeed"): SUCCESS,
    (VERIFYING, "fail"): FAILURE,
    (SUCCESS, "start"): VERIFYING,
    (FAILURE, "start"): VERIFYING,
}


def transition(status, event):
    """Next verification status after ``event``; ``reset`` always goes back to idle."""
    if event == "reset":
        return IDLE
    try:
        return _TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransition("cannot %s while %s" % (event, status)) from None


class VerificationResult:

    def __init__(self, waste_type, quantity, confidence):
        self.waste_type = waste_type
        self.quantity = quantity
        self.confidence = confidence

    def to_dict(self):
        return {"wasteType": self.waste_type, "quantity": self.quantity, "confidence": self.confidence}

    def to_json(self):
        return json.dumps(self.to_dict())

    def __eq__(self, other):
        if not isinstance(other, VerificationResult):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return "VerificationResult(%r, %r, %r)" % (self.waste_type, self.quantity, self.confidence)


def _reject_constant(name):
    # NaN and Infinity are not JSON
    raise ValueError("unexpected constant %s" % name)


def strip_code_fences(text):
    return FENCE_RE.sub("", text).strip()


def parse_verification(text):
    """Parse and validate a classification reply.

    Markdown code fences around the JSON are ignored. Raises
    ``VerificationError`` with a short reason when anything is off.
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned, parse_constant=_reject_constant)
    except ValueError as e:
        raise VerificationError("Invalid JSON: %s" % e) from e
    if not isinstance(parsed, dict):
        raise VerificationError("Response is not a JSON object")

    waste_type = parsed.get("wasteType")
    quantity = parsed.get("quantity")
    confidence = parsed.get("confidence")
    if (not waste_type or not quantity
            or isinstance(confidence, bool) or not isinstance(confidence, (int, float))):
        raise VerificationError("Response missing required fields")
    if not isinstance(waste_type, str) or waste_type.lower() not in WASTE_TYPES:
        raise VerificationError("Invalid waste type")
    if not isinstance(quantity, str) or not QUANTITY_RE.match(quantity):
        raise VerificationError("Invalid quantity format")
    if not 0 <= confidence <= 1 or not math.isfinite(confidence):
        raise VerificationError("Invalid confidence value")
    return VerificationResult(waste_type, quantity, confidence)


class GeminiClient:
    """Minimal client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(self, api_key, model="gemini-1.5-flash",
                 base_url="https://generativelanguage.googleapis.com/v1beta", timeout=30):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(config.get("GEMINI_API_KEY"), config["GEMINI_MODEL"],
                   config["GEMINI_API_URL"], config["GEMINI_TIMEOUT"])

    @property
    def configured(self):
        return bool(self.api_key)

    def classify(self, image_b64, mime_type, prompt=VERIFICATION_PROMPT):
        """Send the prompt and image, return the reply text."""
        url = "%s/models/%s:generateContent" % (self.base_url, self.model)
        payload = {
            "contents": [{"parts": [
                {"text": prompt},
                {"inline_data": {"mime_type": mime_type, "data": image_b64}},
            ]}],
            "generationConfig": GENERATION_CONFIG,
        }
        try:
            r = requests.post(url, params={"key": self.api_key}, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ClassifierError(str(e)) from e
        if not r.ok:
            raise ClassifierError(_error_message(r))

        try:
            data = r.json()
        except ValueError as e:
            raise ClassifierError("Unreadable response from Gemini") from e
        text = _reply_text(data)
        if not text:
            raise ClassifierError("Empty response from Gemini")
        logger.info("Raw AI response: %s", text)
        return text

    def check_api_key(self):
        """Ask the service to list models with our key; True if it accepts it."""
        if not self.configured:
            logger.warning("GEMINI_API_KEY is not set")
            return False
        try:
            r = requests.get("%s/models" % self.base_url, params={"key": self.api_key}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("API test error: %s", e)
            return False
        if not r.ok:
            logger.error("API test failed (%s): %s", r.status_code, _error_message(r))
            return False
        logger.info("API test passed (%s)", r.status_code)
        return True


def _reply_text(data):
    """First candidate's text, or "" when the reply has none."""
    try:
        text = data["candidates"][0]["content"]["parts"][0].get("text")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return text.strip() if isinstance(text, str) else ""


def _error_message(response):
    try:
        message = response.json().get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return message or "HTTP %s" % response.status_code
