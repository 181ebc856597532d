from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field

from slot_scheduler.availability import annotate_slots, compute_disabled_slots
from slot_scheduler.booking_flow import EDITABLE_PHASES, BookingPhase, transition
from slot_scheduler.conflicts import BlockReason, Verdict, VerdictKind, evaluate
from slot_scheduler.errors import InvalidSelection, RemoteFailure
from slot_scheduler.mock_client import MockApiClient, SchedulingApi
from slot_scheduler.models import Appointment, BookingRequest, Clinic, Doctor, SchedulerConfig
from slot_scheduler.selection import Choice, build_default_choices, downstream_of
from slot_scheduler.slots import DEFAULT_CONFIG, all_slots, generate_slots, is_weekend

logger = logging.getLogger(__name__)

SELECT_ACTIONS = ("select_clinic", "select_doctor", "select_date", "select_time", "describe")
ACTIONS = ("start", "view", "submit", "confirm", "cancel", *SELECT_ACTIONS)

_BLOCK_MESSAGES = {
    BlockReason.INCOMPLETE_SELECTION: "Please select a clinic, a doctor, a date and a time.",
    BlockReason.DUPLICATE_ACTIVE_SLOT: "You already have an active appointment at this time.",
}

_RUNTIME_FIELDS = {"token", "action", "payload", "response_message"}


class BookingState(BaseModel):
    """Aggregate booking session state (serialisable)."""

    started: bool = False
    patient_id: int | None = None
    phase: BookingPhase = BookingPhase.IDLE

    clinics: list[Clinic] = Field(default_factory=list)
    doctors: list[Doctor] = Field(default_factory=list)
    patient_appointments: list[Appointment] = Field(default_factory=list)
    doctor_appointments: list[Appointment] = Field(default_factory=list)
    # (doctor id, date) the doctor appointments were fetched for
    doctor_appointments_key: tuple[int, date] | None = None

    clinic_id: int | None = None
    doctor_id: int | None = None
    selected_date: date | None = None
    selected_time: str = ""
    description: str = ""

    verdict: Verdict | None = None
    last_booking: Appointment | None = None
    superseded: Appointment | None = None

    # ─ runtime-only fields (excluded from persistence) ─
    token: str | None = None
    action: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    response_message: str | None = None

    model_config = {"arbitrary_types_allowed": True, "extra": "allow"}

    @property
    def clinic(self) -> Clinic | None:
        return next((c for c in self.clinics if c.id == self.clinic_id), None)

    @property
    def doctor(self) -> Doctor | None:
        return next((d for d in self.doctors if d.id == self.doctor_id), None)

    def current_doctor_appointments(self) -> list[Appointment] | None:
        """Bookings of the selected doctor on the selected date.

        ``None`` when the loaded bookings answer an earlier doctor or date
        (or failed to load); availability is unknown until they are refetched.
        """
        if self.doctor_id is None or self.selected_date is None:
            return []
        if self.doctor_appointments_key != (self.doctor_id, self.selected_date):
            return None
        return self.doctor_appointments

    def booking_request(self) -> BookingRequest:
        clinic = self.clinic
        return BookingRequest(
            clinic_id=self.clinic_id,
            clinic_name=clinic.name if clinic else None,
            doctor_id=self.doctor_id,
            patient_id=self.patient_id,
            date=self.selected_date or date.min,
            time=self.selected_time,
            description=self.description,
        )


class BookingReply(BaseModel):
    phase: BookingPhase
    message: str
    view: dict[str, Any]


class GraphManager:
    """Wraps a LangGraph booking flow and handles per-thread persistence."""

    def __init__(
        self,
        api: SchedulingApi | None = None,
        clock: Callable[[], datetime] = datetime.now,
        config: SchedulerConfig = DEFAULT_CONFIG,
    ) -> None:
        self.api = api or MockApiClient()
        self.clock = clock
        self.config = config
        self.choice_definitions: list[Choice] = build_default_choices(clock, config)

        self.graph = self._build_graph()
        self.executor = self.graph.compile()

        # in-memory persistence (thread-safe with an asyncio.Lock)
        # Sessions are kept for the life of the process; there is no eviction.
        self._threads: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        # one lock per busy thread so its actions run one after another;
        # dropped again once no action for the thread is pending
        self._thread_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph state machine for the booking flow."""
        g = StateGraph(BookingState)

        g.add_node("init", self._init_session)
        g.add_node("select", self._apply_selection)
        g.add_node("evaluate", self._evaluate_request)
        g.add_node("confirm", self._confirm)
        g.add_node("cancel", self._cancel)
        g.add_node("submit", self._submit)

        g.set_entry_point("init")

        g.add_conditional_edges(
            "init",
            self._route_after_init,
            {
                "select": "select",
                "evaluate": "evaluate",
                "confirm": "confirm",
                "cancel": "cancel",
                "end": END,
            },
        )

        g.add_conditional_edges(
            "evaluate",
            self._route_to_submission,
            {"submit": "submit", "end": END},
        )
        g.add_conditional_edges(
            "confirm",
            self._route_to_submission,
            {"submit": "submit", "end": END},
        )

        g.add_edge("select", END)
        g.add_edge("cancel", END)
        g.add_edge("submit", END)
        return g

    # ------------------------------------------------------------------ #
    #  Nodes
    # ------------------------------------------------------------------ #
    def _init_session(self, state: BookingState) -> BookingState:
        """Resolve the patient and load clinics on the first message of a thread."""
        if state.selected_date is None:
            state.selected_date = self.clock().date()

        if state.action not in ACTIONS:
            state.response_message = f"Unknown action {state.action!r}. Expected one of: {', '.join(ACTIONS)}"
            return state

        if state.started:
            return state

        try:
            patient = self.api.get_current_user(state.token or "")
            state.patient_id = patient.id
            state.patient_appointments = self.api.get_patient_appointments(patient.id)
            state.clinics = [c for c in self.api.get_clinics() if c.is_active]
        except RemoteFailure as e:
            logger.warning("Could not start booking session: %s", e)
            state.response_message = f"Could not load your booking data: {e}"
            return state

        state.started = True
        logger.info("Booking session started for patient %s", state.patient_id)
        if state.action == "start":
            state.response_message = "Please select a clinic."
        return state

    def _route_after_init(self, state: BookingState) -> str:
        if not state.started or state.action not in ACTIONS:
            return "end"
        if state.action in SELECT_ACTIONS:
            return "select"
        if state.action == "submit":
            return "evaluate"
        if state.action in ("confirm", "cancel"):
            return state.action
        return "end"

    def _apply_selection(self, state: BookingState) -> BookingState:
        if state.phase not in EDITABLE_PHASES:
            state.response_message = "Please confirm or cancel the pending booking first."
            return state

        if state.phase is BookingPhase.SUBMITTED:
            state.phase = transition(state.phase, BookingPhase.IDLE)

        handler = {
            "select_clinic": self._select_clinic,
            "select_doctor": self._select_doctor,
            "select_date": self._select_date,
            "select_time": self._select_time,
            "describe": self._describe,
        }[state.action]

        try:
            state.response_message = handler(state, state.payload)
        except InvalidSelection as e:
            state.response_message = str(e)
        except RemoteFailure as e:
            logger.warning("Directory lookup failed: %s", e)
            state.response_message = f"Could not load options: {e}"
        return state

    def _evaluate_request(self, state: BookingState) -> BookingState:
        if state.phase is BookingPhase.AWAITING_CONFIRMATION:
            state.response_message = "Please confirm or cancel the pending booking first."
            return state

        if state.selected_time and not self._slot_still_open(state):
            return self._drop_expired_slot(state)

        verdict = evaluate(state.booking_request(), state.patient_appointments)
        state.verdict = verdict

        if state.phase in (BookingPhase.FAILED, BookingPhase.BLOCKED):
            # retry: back to the chosen slot, then evaluate again
            state.phase = transition(state.phase, BookingPhase.SLOT_CHOSEN)

        if state.phase is not BookingPhase.SLOT_CHOSEN:
            # nothing chosen yet; stay put and ask for the missing fields
            state.response_message = _BLOCK_MESSAGES[BlockReason.INCOMPLETE_SELECTION]
            return state

        state.phase = transition(state.phase, BookingPhase.EVALUATING)

        if verdict.kind is VerdictKind.BLOCK:
            state.phase = transition(state.phase, BookingPhase.BLOCKED)
            state.response_message = _BLOCK_MESSAGES[verdict.reason]
        elif verdict.kind is VerdictKind.CONFIRM_REPLACE:
            state.phase = transition(state.phase, BookingPhase.AWAITING_CONFIRMATION)
            old = verdict.superseded
            state.response_message = (
                f"You already have an active appointment in {old.clinic} "
                f"on {old.date.isoformat()} at {old.slot}. "
                "Booking a new one will cancel it. Confirm to continue."
            )
        else:
            state.phase = transition(state.phase, BookingPhase.SUBMITTING)
        return state

    def _route_to_submission(self, state: BookingState) -> str:
        if state.phase is BookingPhase.SUBMITTING:
            return "submit"
        return "end"

    def _confirm(self, state: BookingState) -> BookingState:
        if state.phase is not BookingPhase.AWAITING_CONFIRMATION:
            state.response_message = "There is no booking waiting for confirmation."
            return state
        if not self._slot_still_open(state):
            return self._drop_expired_slot(state)
        state.phase = transition(state.phase, BookingPhase.SUBMITTING)
        return state

    def _cancel(self, state: BookingState) -> BookingState:
        if state.phase is not BookingPhase.AWAITING_CONFIRMATION:
            state.response_message = "There is no booking waiting for confirmation."
            return state
        state.phase = transition(state.phase, BookingPhase.IDLE)
        state.selected_time = ""
        state.verdict = None
        state.response_message = "Booking cancelled. Your existing appointment is kept."
        return state

    def _submit(self, state: BookingState) -> BookingState:
        request = state.booking_request()
        superseded = state.verdict.superseded if state.verdict else None

        try:
            booked = self.api.create_appointment(request)
        except RemoteFailure as e:
            logger.warning("Appointment submission failed: %s", e)
            state.phase = transition(state.phase, BookingPhase.FAILED)
            state.response_message = "Could not create the appointment. Please try again."
            return state

        state.phase = transition(state.phase, BookingPhase.SUBMITTED)
        state.last_booking = booked
        state.superseded = superseded
        self._reset_form(state)
        state.response_message = f"✅ Your appointment is booked for {booked.date.isoformat()} at {booked.slot}."

        try:
            state.patient_appointments = self.api.get_patient_appointments(request.patient_id)
        except RemoteFailure as e:
            logger.warning("Could not refresh patient appointments: %s", e)
        return state

    # ------------------------------------------------------------------ #
    #  Selection handlers
    # ------------------------------------------------------------------ #
    def _select_clinic(self, state: BookingState, payload: dict[str, Any]) -> str:
        clinic_id = _int_field(payload, "clinic_id")
        if str(clinic_id) not in self._options_for_choice(state, "clinic"):
            raise InvalidSelection(f"Clinic {clinic_id} is not available.")

        state.clinic_id = clinic_id
        self._clear_downstream(state, "clinic")
        state.doctors = []  # a failed lookup must not leave the previous clinic's doctors
        state.doctors = self.api.get_doctors(clinic_id)
        names = ", ".join(d.full_name for d in state.doctors)
        return f"{state.clinic.name} selected. Please select a doctor: {names}"

    def _select_doctor(self, state: BookingState, payload: dict[str, Any]) -> str:
        doctor_id = _int_field(payload, "doctor_id")
        if str(doctor_id) not in self._options_for_choice(state, "doctor"):
            raise InvalidSelection(f"Doctor {doctor_id} is not available in this clinic.")

        state.doctor_id = doctor_id
        self._clear_downstream(state, "doctor")
        self._refresh_doctor_appointments(state)
        return f"{state.doctor.full_name} selected. {self._slots_summary(state)}"

    def _select_date(self, state: BookingState, payload: dict[str, Any]) -> str:
        raw = payload.get("date")
        try:
            day = date.fromisoformat(str(raw))
        except ValueError:
            raise InvalidSelection(f"Invalid date {raw!r}. Expected YYYY-MM-DD.") from None
        if day < self.clock().date():
            raise InvalidSelection("Appointments cannot be booked in the past.")

        state.selected_date = day
        self._clear_downstream(state, "date")
        if state.doctor_id is not None:
            self._refresh_doctor_appointments(state)
        return f"{day.isoformat()} selected. {self._slots_summary(state)}"

    def _select_time(self, state: BookingState, payload: dict[str, Any]) -> str:
        slot = str(payload.get("time") or "")[:5]
        if state.doctor_id is None:
            raise InvalidSelection("Please select a doctor first.")
        if state.selected_date is None or state.selected_date < self.clock().date():
            raise InvalidSelection("The selected date has passed. Please pick a new date.")
        if slot not in self._options_for_choice(state, "time"):
            raise InvalidSelection(f"{slot or 'That time'} is not available.")

        state.selected_time = slot
        state.phase = transition(state.phase, BookingPhase.SLOT_CHOSEN)
        return f"{slot} selected. Submit to book the appointment."

    def _describe(self, state: BookingState, payload: dict[str, Any]) -> str:
        state.description = str(payload.get("description") or "").strip()
        return "Description saved."

    # ------------------------------------------------------------------ #
    #  Helper utilities
    # ------------------------------------------------------------------ #
    def _options_for_choice(self, state: BookingState, name: str) -> list[str]:
        choice = next(c for c in self.choice_definitions if c.name == name)
        return choice.options(state)

    def _slot_still_open(self, state: BookingState) -> bool:
        """The chosen slot may have passed or been booked since it was picked."""
        return state.selected_time in self._options_for_choice(state, "time")

    def _drop_expired_slot(self, state: BookingState) -> BookingState:
        state.phase = transition(state.phase, BookingPhase.IDLE)
        state.selected_time = ""
        state.verdict = None
        state.response_message = f"That time is no longer available. {self._slots_summary(state)}"
        return state

    def _clear_downstream(self, state: BookingState, name: str) -> None:
        for dependent in downstream_of(name):
            if dependent == "doctor":
                state.doctor_id = None
                state.doctor_appointments = []
                state.doctor_appointments_key = None
            elif dependent == "time":
                state.selected_time = ""
        if state.phase is not BookingPhase.IDLE:
            state.phase = transition(state.phase, BookingPhase.IDLE)
        state.verdict = None

    def _refresh_doctor_appointments(self, state: BookingState) -> None:
        # Tagged with the doctor/date they answer; see current_doctor_appointments().
        key = (state.doctor_id, state.selected_date)
        state.doctor_appointments = self.api.get_doctor_appointments(*key)
        state.doctor_appointments_key = key

    def _slots_summary(self, state: BookingState) -> str:
        if is_weekend(state.selected_date):
            return "Appointments cannot be booked on weekends."
        available = self._options_for_choice(state, "time")
        if not available:
            return "No free times left on this day."
        return f"Available times: {', '.join(available)}"

    @staticmethod
    def _reset_form(state: BookingState) -> None:
        state.clinic_id = None
        state.doctor_id = None
        state.doctors = []
        state.selected_time = ""
        state.description = ""
        state.doctor_appointments = []
        state.doctor_appointments_key = None
        state.verdict = None

    def build_view(self, state: BookingState) -> dict[str, Any]:
        """Everything the client needs to render the booking form."""
        day = state.selected_date
        groups = []
        if day is not None:
            grid = generate_slots(day, self.config)
            booked = state.current_doctor_appointments()
            if booked is None:
                disabled = set(all_slots(grid))
            else:
                disabled = compute_disabled_slots(day, self.clock(), booked, self.config)
            groups = annotate_slots(grid, disabled)

        return {
            "patient_id": state.patient_id,
            "clinics": [c.model_dump(mode="json") for c in state.clinics],
            "doctors": [d.model_dump(mode="json") for d in state.doctors],
            "clinic_id": state.clinic_id,
            "doctor_id": state.doctor_id,
            "date": day.isoformat() if day else None,
            "weekend": bool(day and is_weekend(day)),
            "time": state.selected_time or None,
            "description": state.description,
            "hour_groups": [g.model_dump(mode="json") for g in groups],
            "last_booking": state.last_booking.model_dump(mode="json") if state.last_booking else None,
            "superseded": state.superseded.model_dump(mode="json") if state.superseded else None,
        }

    # ------------------------------------------------------------------ #
    #  Persistence helpers (thread-safe)
    # ------------------------------------------------------------------ #
    async def _load_state(self, thread_id: str) -> BookingState:
        """Load booking state for a thread from persistence."""
        async with self._lock:
            raw = self._threads.get(thread_id)
        return BookingState.model_validate(raw) if raw else BookingState()

    async def _save_state(self, thread_id: str, state) -> None:
        """Save booking state for a thread to persistence."""
        if isinstance(state, BookingState):
            serialisable = state.model_dump(exclude=_RUNTIME_FIELDS)
        else:
            serialisable = {k: v for k, v in dict(state).items() if k not in _RUNTIME_FIELDS}
        async with self._lock:
            self._threads[thread_id] = serialisable

    @asynccontextmanager
    async def _serialised(self, thread_id: str):
        async with self._lock:
            lock, users = self._thread_locks.get(thread_id, (asyncio.Lock(), 0))
            self._thread_locks[thread_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            async with self._lock:
                lock, users = self._thread_locks[thread_id]
                if users == 1:
                    del self._thread_locks[thread_id]
                else:
                    self._thread_locks[thread_id] = (lock, users - 1)

    async def process_message(
        self,
        thread_id: str,
        token: str,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> BookingReply:
        """Apply one user action to a thread's booking session.

        Loads state, runs the action through the graph, and saves the updated state.
        """
        async with self._serialised(thread_id):
            state = await self._load_state(thread_id)
            state.token = token
            state.action = action
            state.payload = payload or {}
            state.response_message = None

            result = await asyncio.to_thread(self.executor.invoke, state)
            state = result if isinstance(result, BookingState) else BookingState.model_validate(result)
            await self._save_state(thread_id, state)

        return BookingReply(
            phase=state.phase,
            message=state.response_message or self._default_message(state),
            view=self.build_view(state),
        )

    @staticmethod
    def _default_message(state: BookingState) -> str:
        if state.clinic_id is None:
            return "Please select a clinic."
        if state.doctor_id is None:
            return "Please select a doctor."
        if not state.selected_time:
            return "Please select a time."
        return "Submit to book the appointment."


def _int_field(payload: dict[str, Any], name: str) -> int:
    try:
        return int(payload[name])
    except (KeyError, TypeError, ValueError):
        raise InvalidSelection(f"Missing or invalid {name}.") from None
