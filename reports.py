import logging
import threading
import time
import uuid
from collections import OrderedDict

import models
from db import StoreError
from intake import IntakeError, read_image
from verification import (
    IDLE, SUCCESS, VERIFYING,
    ClassifierError, VerificationError, parse_verification, transition,
)

logger = logging.getLogger(__name__)


class ReportDraft:

    def __init__(self, location="", type="", amount=""):
        self.location = location
        self.type = type
        self.amount = amount

    def to_dict(self):
        return {"location": self.location, "type": self.type, "amount": self.amount}


class ReportPageState:
    """Everything the report page holds between requests."""

    def __init__(self):
        self.lock = threading.RLock()
        self.draft = ReportDraft()
        self.image = None
        self.status = IDLE
        self.result = None
        self.reports = []
        self.submitting = False
        # bumped on every new file and verification attempt
        self.seq = 0

    @property
    def preview(self):
        return self.image.preview if self.image else None

    def reset(self):
        self.draft = ReportDraft()
        self.image = None
        self.status = transition(self.status, "reset")
        self.result = None


class PageStateRegistry:
    """One ``ReportPageState`` per browser session, kept in memory.

    States unused for ``ttl`` seconds are dropped, and at most ``max_size``
    are kept (least recently used go first).
    """

    def __init__(self, max_size=500, ttl=3600, clock=time.monotonic):
        self.max_size = max_size
        self.ttl = ttl
        self.clock = clock
        self._states = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._states)

    def __contains__(self, key):
        return key in self._states

    def new_key(self):
        return uuid.uuid4().hex

    def get(self, key):
        with self._lock:
            now = self.clock()
            self._expire(now)
            entry = self._states.pop(key, None)
            state = entry[1] if entry else ReportPageState()
            self._states[key] = (now, state)
            while len(self._states) > self.max_size:
                self._states.popitem(last=False)
            return state

    def _expire(self, now):
        while self._states:
            key, (last_used, _) = next(iter(self._states.items()))
            if now - last_used < self.ttl:
                break
            del self._states[key]

    def discard(self, key):
        with self._lock:
            self._states.pop(key, None)


class ReportController:
    """Drives the report page: file choice, verification and submission.

    ``notify(message, category)`` shows a message to the user; the web app
    passes Flask's ``flash``.
    """

    def __init__(self, state, store, classifier, notify, recent_limit=10):
        self.state = state
        self.store = store
        self.classifier = classifier
        self.notify = notify
        self.recent_limit = recent_limit

    def load_recent(self):
        """Refresh the recent reports list from the store."""
        state = self.state
        docs = self.store.get_recent_reports(self.recent_limit)
        with state.lock:
            state.reports = [models.format_report(d) for d in docs]
        return state.reports

    def set_location(self, value):
        if value is None:
            return
        with self.state.lock:
            self.state.draft.location = value

    def select_place(self, places):
        """Place search picked something; only the first place counts."""
        if not places:
            return None
        location = places[0].get("formatted_address") or ""
        self.set_location(location)
        return location

    def choose_file(self, upload):
        try:
            image = read_image(upload)
        except IntakeError as e:
            logger.info("File intake failed: %s", e)
            self._replace_image(None)
            self.notify(str(e), "error")
            return None
        self._replace_image(image)
        return image

    def _replace_image(self, image):
        state = self.state
        with state.lock:
            state.seq += 1
            state.image = image
            state.result = None
            state.draft.type = ""
            state.draft.amount = ""
            state.status = transition(state.status, "reset")

    def verify(self):
        state = self.state
        with state.lock:
            if state.image is None or not self.classifier.configured:
                self.notify("Missing file or API key", "error")
                return None
            if state.status == VERIFYING:
                self.notify("Verification already in progress", "error")
                return None
            state.status = transition(state.status, "start")
            state.seq += 1
            seq = state.seq
            image = state.image

        try:
            text = self.classifier.classify(image.base64_payload(), image.mimetype)
        except ClassifierError as e:
            logger.error("Verification error: %s", e)
            if self._finish(seq, "fail"):
                self.notify("Verification failed: %s" % e, "error")
            return None
        except Exception as e:
            logger.exception("Unexpected verification error")
            if self._finish(seq, "fail"):
                self.notify("Verification failed: %s" % e, "error")
            return None

        try:
            result = parse_verification(text)
        except VerificationError as e:
            logger.error("Parse error: %s; failed response: %s", e, text)
            if self._finish(seq, "fail"):
                self.notify("Failed to parse AI response: %s" % e, "error")
            return None
        except Exception as e:
            logger.exception("Unexpected error parsing AI response")
            if self._finish(seq, "fail"):
                self.notify("Failed to parse AI response: %s" % e, "error")
            return None

        if not self._finish(seq, "succeed", result):
            return None
        self.notify("Waste verification successful!", "success")
        return result

    def _finish(self, seq, event, result=None):
        state = self.state
        with state.lock:
            if seq != state.seq:
                logger.info("Discarding superseded verification reply %d (latest %d)", seq, state.seq)
                return False
            state.status = transition(state.status, event)
            if result is not None:
                state.result = result
                state.draft.type = result.waste_type
                state.draft.amount = result.quantity
            return True

    def submit(self, user):
        state = self.state
        with state.lock:
            if state.status != SUCCESS or not user:
                self.notify("Please verify the waste before submitting or log in.", "error")
                return None
            if not state.draft.location.strip():
                self.notify("Please enter the waste location.", "error")
                return None
            if state.submitting:
                self.notify("A submission is already in progress.", "error")
                return None
            state.submitting = True
            seq = state.seq
            draft = state.draft
            preview = state.preview
            result = state.result

        try:
            try:
                report = self.store.create_report(
                    user["id"],
                    draft.location,
                    draft.type,
                    draft.amount,
                    preview,
                    result.to_json() if result else None,
                )
            except StoreError as e:
                logger.error("Error submitting report: %s", e)
                self.notify("Failed to submit report. Please try again.", "error")
                return None

            formatted = models.format_report(report)
            with state.lock:
                state.reports.insert(0, formatted)
                if seq == state.seq:
                    state.reset()
            self.notify("Report submitted successfully! You've earned points for reporting waste.", "success")
            return formatted
        finally:
            with state.lock:
                state.submitting = False

