"""IntakeFormService: turn a submitted intake form into a client profile.

Forms are fetched in full from the provider, answers are located by
question id (adult and minor form layouts) or by keywords in the question
text, and the resulting profile replaces the stored one. The configuration
cache is invalidated so the next assignment sees the new requirements.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from officesync.core.exceptions import TransientInfraError, ValidationError
from officesync.infra.database.repositories.scheduling_config import ClientProfileRepository
from officesync.orchestrator.events import FormSubmittedEvent
from officesync.orchestrator.types import AuditEventType, AuditRecord

logger = logging.getLogger(__name__)

_MINOR_NAME = re.compile(r"minor|child|youth|teen|adolescent", re.IGNORECASE)
_ADULT_NAME = re.compile(r"adult|individual|personal", re.IGNORECASE)

# (question ids, question-text keywords) per extracted field
_QUESTIONS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "mobility": (("70sl-1", "12"), ("mobility devices", "ground floor access")),
    "sensory": (("wkfi-1", "13"), ("sensory sensitivities", "light sensitivity", "auditory sensitivity")),
    "physical": (("1zfd-1", "14"), ("physical environment",)),
    "consistency": (("j3rq-1", "15"), ("room consistency", "comfort level", "different therapy room")),
    "support": (("6gz6-1", "16"), ("support needs", "service animal", "support person")),
    "notes": (("i820-1",), ("anything else we should know", "space or accessibility needs")),
}
_ADULT_IDS = ("70sl-1", "wkfi-1", "1zfd-1")
_MINOR_IDS = ("12", "13", "14")
_SENSORY_KEYWORDS = ("light", "sound", "noise", "auditory", "scent", "temperature", "crowd")
_NEGATIVE_ANSWERS = frozenset({"no", "none", "n/a", "na", "not applicable", "-"})


@dataclass(frozen=True)
class AccessibilityProfile:
    client_id: str
    name: str = ""
    has_mobility_needs: bool = False
    mobility_details: str = ""
    has_sensory_needs: bool = False
    sensory_details: str = ""
    sensory_preferences: Tuple[str, ...] = ()
    has_physical_needs: bool = False
    physical_details: str = ""
    room_consistency: int = 3
    has_support_needs: bool = False
    support_details: str = ""
    additional_notes: str = ""
    form_type: str = "Unknown"
    form_id: Optional[str] = None


def determine_form_type(form: Dict[str, Any]) -> str:
    """Adult, Minor or Unknown from the questionnaire name, then from question ids."""
    name = str(form.get("QuestionnaireName") or "")
    if _MINOR_NAME.search(name):
        return "Minor"
    if _ADULT_NAME.search(name):
        return "Adult"
    ids = {str(q.get("Id")) for q in _questions(form)}
    if ids.intersection(_ADULT_IDS):
        return "Adult"
    if ids.intersection(_MINOR_IDS):
        return "Minor"
    return "Unknown"


def _questions(form: Dict[str, Any]) -> List[Dict[str, Any]]:
    questions = form.get("Questions") or []
    return [q for q in questions if isinstance(q, dict)]


def _find(questions: Iterable[Dict[str, Any]], field_name: str) -> Optional[Dict[str, Any]]:
    ids, keywords = _QUESTIONS[field_name]
    for q in questions:
        text = str(q.get("Text") or "").lower()
        if str(q.get("Id")) in ids or any(k in text for k in keywords):
            return q
    return None


def _answer(question: Optional[Dict[str, Any]]) -> str:
    if question is None:
        return ""
    answer = question.get("Answer")
    return "" if answer is None else str(answer).strip()


def _affirmative(answer: str) -> bool:
    return bool(answer) and answer.lower() not in _NEGATIVE_ANSWERS


def _consistency(answer: str) -> int:
    """First digit 1-5 in the answer, else the neutral 3."""
    match = re.search(r"[1-5]", answer)
    return int(match.group()) if match else 3


def extract_accessibility(form: Dict[str, Any], client_id: str) -> AccessibilityProfile:
    questions = _questions(form)
    mobility = _answer(_find(questions, "mobility"))
    sensory = _answer(_find(questions, "sensory"))
    physical = _answer(_find(questions, "physical"))
    support = _answer(_find(questions, "support"))
    return AccessibilityProfile(
        client_id=client_id,
        name=str(form.get("ClientName") or ""),
        has_mobility_needs=_affirmative(mobility),
        mobility_details=mobility,
        has_sensory_needs=_affirmative(sensory),
        sensory_details=sensory,
        sensory_preferences=tuple(k for k in _SENSORY_KEYWORDS if k in sensory.lower()),
        has_physical_needs=_affirmative(physical),
        physical_details=physical,
        room_consistency=_consistency(_answer(_find(questions, "consistency"))),
        has_support_needs=_affirmative(support),
        support_details=support,
        additional_notes=_answer(_find(questions, "notes")),
        form_type=determine_form_type(form),
        form_id=str(form.get("Id")) if form.get("Id") is not None else None,
    )


class IntakeFormService:
    def __init__(
        self,
        provider,
        config_service,
        store,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._provider = provider
        self._config = config_service
        self._store = store
        self._session_factory = session_factory

    async def process(self, event: FormSubmittedEvent) -> AccessibilityProfile:
        form = await self._provider.get_intake_form(event.intake_id)
        client_id = str(form.get("ClientId") or event.client_id)
        if not client_id:
            raise ValidationError("Intake form has no client", details={"intake_id": event.intake_id})

        profile = extract_accessibility(form, client_id)
        await self._save_profile(profile)
        self._config.invalidate()
        logger.info(
            "IntakeFormService: client %s profile updated from %s form %s",
            client_id, profile.form_type, event.intake_id,
            extra={"extra": {
                "mobility": profile.has_mobility_needs,
                "sensory": profile.has_sensory_needs,
                "physical": profile.has_physical_needs,
                "room_consistency": profile.room_consistency,
            }},
        )
        try:
            await self._store.append_audit_entry(AuditRecord(
                event_type=AuditEventType.CLIENT_PREFERENCES_UPDATED,
                description=f"Updated accessibility info for client {client_id} from form {event.intake_id}",
                system_notes={
                    "form_type": profile.form_type,
                    "has_mobility_needs": profile.has_mobility_needs,
                    "has_sensory_needs": profile.has_sensory_needs,
                    "has_physical_needs": profile.has_physical_needs,
                    "room_consistency": profile.room_consistency,
                },
            ))
        except Exception as exc:
            logger.error("IntakeFormService: audit write failed for client %s: %s", client_id, exc)
        return profile

    async def _save_profile(self, profile: AccessibilityProfile) -> None:
        data = asdict(profile)
        data["sensory_preferences"] = list(profile.sensory_preferences)
        if not data["name"]:
            data.pop("name")
        try:
            async with self._session_factory() as session:
                await ClientProfileRepository(session).save(profile.client_id, data)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise TransientInfraError("Client profile write failed", cause=exc,
                                      details={"client_id": profile.client_id}) from exc


class InMemoryIntakeFormService(IntakeFormService):
    """Keeps profiles in a dict (tests, dry runs)."""

    def __init__(self, provider, config_service, store) -> None:
        super().__init__(provider, config_service, store)
        self.profiles: Dict[str, AccessibilityProfile] = {}

    async def _save_profile(self, profile: AccessibilityProfile) -> None:
        self.profiles[profile.client_id] = profile
