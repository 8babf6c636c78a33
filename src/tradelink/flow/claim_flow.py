"""
Claim flow state machine.

The claim screen walks loading -> preview -> auth -> property -> importing ->
success, with error reachable from anywhere and closed when the claimant
walks away. States are immutable and carry only what is valid in that step;
reduce() is pure so the flow can be tested without any UI or services.

ClaimFlowController drives the reducer: it performs the side effects
(validation, email gate, default home creation, the claim call) and feeds the
outcomes back in as events.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradelink.auth.clerk import AuthenticatedUser
from tradelink.services.claim_errors import ErrorCode
from tradelink.services.claim_orchestrator import ClaimOrchestrator, ClaimResult
from tradelink.services.email_gate import check_email_match
from tradelink.services.property_service import PropertyService
from tradelink.services.token_validator import InvitationPreview, TokenValidator, ValidationResult

logger = logging.getLogger(__name__)


class FlowTransitionError(ValueError):
    """An event arrived that the current state does not accept."""


@dataclass(frozen=True)
class PropertyOption:
    id: str
    name: str


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Loading:
    token: str
    step: str = field(default="loading", init=False)


@dataclass(frozen=True)
class Preview:
    invitation_id: str
    preview: InvitationPreview
    step: str = field(default="preview", init=False)


@dataclass(frozen=True)
class Auth:
    invitation_id: str
    preview: InvitationPreview
    step: str = field(default="auth", init=False)


@dataclass(frozen=True)
class ChooseProperty:
    invitation_id: str
    preview: InvitationPreview
    user: AuthenticatedUser
    properties: Tuple[PropertyOption, ...] = ()
    selected_property_id: Optional[str] = None
    notice: Optional[ErrorCode] = None
    step: str = field(default="property", init=False)


@dataclass(frozen=True)
class Importing:
    invitation_id: str
    preview: InvitationPreview
    user: AuthenticatedUser
    properties: Tuple[PropertyOption, ...]
    property_id: str
    step: str = field(default="importing", init=False)


@dataclass(frozen=True)
class Success:
    imported_count: int
    contractor_name: str
    step: str = field(default="success", init=False)


@dataclass(frozen=True)
class Failed:
    reason: ErrorCode
    step: str = field(default="error", init=False)


@dataclass(frozen=True)
class Closed:
    step: str = field(default="closed", init=False)


FlowState = Union[Loading, Preview, Auth, ChooseProperty, Importing, Success, Failed, Closed]

TERMINAL_STATES = (Success, Failed, Closed)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Validated:
    result: ValidationResult


@dataclass(frozen=True)
class Accepted:
    """Claimant pressed accept; user is None when nobody is signed in."""
    user: Optional[AuthenticatedUser] = None
    email_matches: bool = True
    properties: Tuple[PropertyOption, ...] = ()


@dataclass(frozen=True)
class Authenticated:
    user: AuthenticatedUser
    email_matches: bool
    properties: Tuple[PropertyOption, ...] = ()


@dataclass(frozen=True)
class PropertySelected:
    property_id: str


@dataclass(frozen=True)
class PropertyCreated:
    option: PropertyOption


@dataclass(frozen=True)
class PropertyCreateFailed:
    reason: ErrorCode = ErrorCode.UNAVAILABLE


@dataclass(frozen=True)
class ImportStarted:
    property_id: str


@dataclass(frozen=True)
class ClaimFinished:
    result: ClaimResult


@dataclass(frozen=True)
class Cancelled:
    pass


FlowEvent = Union[
    Validated, Accepted, Authenticated, PropertySelected, PropertyCreated,
    PropertyCreateFailed, ImportStarted, ClaimFinished, Cancelled,
]


def _choose_property(state, user: AuthenticatedUser, properties: Tuple[PropertyOption, ...]) -> ChooseProperty:
    return ChooseProperty(
        invitation_id=state.invitation_id,
        preview=state.preview,
        user=user,
        properties=tuple(properties),
        selected_property_id=properties[0].id if properties else None,
    )


def _invalid(state: FlowState, event: FlowEvent) -> FlowTransitionError:
    return FlowTransitionError(
        f"{type(event).__name__} is not valid in step '{state.step}'"
    )


def reduce(state: FlowState, event: FlowEvent) -> FlowState:
    """Pure transition function for the claim flow."""
    if isinstance(event, Cancelled):
        # Nothing has been written before importing, so leaving is free.
        # Once the claim is issued it runs to completion.
        if isinstance(state, Importing):
            return state
        if isinstance(state, TERMINAL_STATES):
            return state
        return Closed()

    if isinstance(state, Loading):
        if isinstance(event, Validated):
            result = event.result
            if not result.valid:
                return Failed(reason=result.reason or ErrorCode.NOT_FOUND)
            return Preview(invitation_id=str(result.invitation.id), preview=result.preview)
        raise _invalid(state, event)

    if isinstance(state, Preview):
        if isinstance(event, Accepted):
            if event.user is None:
                return Auth(invitation_id=state.invitation_id, preview=state.preview)
            if not event.email_matches:
                return Failed(reason=ErrorCode.EMAIL_MISMATCH)
            return _choose_property(state, event.user, event.properties)
        raise _invalid(state, event)

    if isinstance(state, Auth):
        if isinstance(event, Authenticated):
            if not event.email_matches:
                return Failed(reason=ErrorCode.EMAIL_MISMATCH)
            return _choose_property(state, event.user, event.properties)
        raise _invalid(state, event)

    if isinstance(state, ChooseProperty):
        if isinstance(event, PropertySelected):
            if not any(option.id == event.property_id for option in state.properties):
                return replace(state, notice=ErrorCode.INVALID_PROPERTY)
            return replace(state, selected_property_id=event.property_id, notice=None)
        if isinstance(event, PropertyCreated):
            return replace(
                state,
                properties=state.properties + (event.option,),
                selected_property_id=event.option.id,
                notice=None,
            )
        if isinstance(event, PropertyCreateFailed):
            return replace(state, notice=event.reason)
        if isinstance(event, ImportStarted):
            return Importing(
                invitation_id=state.invitation_id,
                preview=state.preview,
                user=state.user,
                properties=state.properties,
                property_id=event.property_id,
            )
        raise _invalid(state, event)

    if isinstance(state, Importing):
        if isinstance(event, ClaimFinished):
            result = event.result
            if result.success:
                return Success(
                    imported_count=result.imported_count,
                    contractor_name=state.preview.contractor_name,
                )
            error = result.error or ErrorCode.UNAVAILABLE
            if error.is_terminal:
                return Failed(reason=error)
            # Recoverable: keep the claimant's selection so they can retry
            return ChooseProperty(
                invitation_id=state.invitation_id,
                preview=state.preview,
                user=state.user,
                properties=state.properties,
                selected_property_id=state.property_id,
                notice=error,
            )
        raise _invalid(state, event)

    raise _invalid(state, event)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------
class ClaimFlowController:
    """
    Runs the claim flow against the services for one claimant session.

    Identity is handed in explicitly (accept/authenticated) rather than read
    from any ambient auth state.
    """

    def __init__(self, db: Session, token: str):
        self.db = db
        self.validator = TokenValidator(db)
        self.orchestrator = ClaimOrchestrator(db)
        self.properties = PropertyService(db)
        self.state: FlowState = Loading(token=token)
        self._invitation = None

    def dispatch(self, event: FlowEvent) -> FlowState:
        previous = self.state
        self.state = reduce(self.state, event)
        if previous.step != self.state.step:
            logger.debug(f"Claim flow {previous.step} -> {self.state.step}")
        return self.state

    def start(self) -> FlowState:
        result = self.validator.validate(self.state.token)
        self._invitation = result.invitation
        return self.dispatch(Validated(result=result))

    def accept(self, user: Optional[AuthenticatedUser] = None) -> FlowState:
        if user is None:
            return self.dispatch(Accepted())
        return self.dispatch(Accepted(
            user=user,
            email_matches=self._email_matches(user),
            properties=self._property_options(user),
        ))

    def authenticated(self, user: AuthenticatedUser) -> FlowState:
        return self.dispatch(Authenticated(
            user=user,
            email_matches=self._email_matches(user),
            properties=self._property_options(user),
        ))

    def select_property(self, property_id: str) -> FlowState:
        return self.dispatch(PropertySelected(property_id=str(property_id)))

    def create_property(self, name: str, address: Optional[str] = None) -> FlowState:
        state = self.state
        if not isinstance(state, ChooseProperty):
            raise FlowTransitionError(f"Cannot create a property in step '{state.step}'")
        try:
            prop = self.properties.create_property(state.user.user_id, name, address)
        except SQLAlchemyError:
            logger.exception("Failed to create property during claim flow")
            return self.dispatch(PropertyCreateFailed())
        return self.dispatch(PropertyCreated(option=PropertyOption(id=str(prop.id), name=prop.name)))

    def confirm(self) -> FlowState:
        """Import into the selected home, creating a default one if the claimant has none."""
        state = self.state
        if not isinstance(state, ChooseProperty):
            raise FlowTransitionError(f"Cannot confirm in step '{state.step}'")

        if state.selected_property_id is None:
            try:
                prop = self.properties.ensure_default_property(state.user.user_id)
            except SQLAlchemyError:
                logger.exception("Failed to create default property during claim flow")
                return self.dispatch(PropertyCreateFailed())
            state = self.dispatch(PropertyCreated(option=PropertyOption(id=str(prop.id), name=prop.name)))

        importing = self.dispatch(ImportStarted(property_id=state.selected_property_id))
        result = self.orchestrator.claim(
            importing.invitation_id,
            importing.user.user_id,
            importing.property_id,
            customer_name=importing.user.name,
            claimant_email=importing.user.email,
        )
        return self.dispatch(ClaimFinished(result=result))

    def cancel(self) -> FlowState:
        return self.dispatch(Cancelled())

    def _email_matches(self, user: AuthenticatedUser) -> bool:
        if self._invitation is None:
            return False
        return check_email_match(self._invitation, user.email).matches

    def _property_options(self, user: AuthenticatedUser) -> Tuple[PropertyOption, ...]:
        return tuple(
            PropertyOption(id=str(prop.id), name=prop.name)
            for prop in self.properties.list_properties(user.user_id)
        )
