"""Data model for the ``getApplyProcess`` response of the recruitment site.

The payload uses camelCase keys; the dataclasses below use snake_case and
convert in both directions so a snapshot can be cached and compared later.
Equality is structural, which is what the monitor relies on to detect
progress changes.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class ProgressParseError(ValueError):
    """Raised when a payload does not match the expected structure."""


class UnknownStepError(ValueError):
    """Raised when an interview round reports a step id we cannot name."""

    def __init__(self, step_id: int) -> None:
        super().__init__(f"unknown step {step_id}")
        self.step_id = step_id


class Step(Enum):
    CV_DELIVERANCE = "CV deliverance"
    EXAMINATION = "Examination"
    WRITTEN_TEST = "Written test"
    GROUP_INTERVIEW = "Group interview"
    PRELIMINARY_INTERVIEW = "Preliminary interview"
    SECONDARY_INTERVIEW = "Secondary interview"
    HR_INTERVIEW = "HR interview"
    EMPLOYER_ASSESSMENT = "Employer assessment"
    EMPLOYEE_CONFIRMATION = "Employee confirmation"
    OFFER_CONFIRMATION = "Offer confirmation"
    SIGN_UP = "Sign up"
    COMPLETED = "Completed"

    def __str__(self) -> str:
        return self.value


_ROUND_ONE_STEPS = {
    1: Step.GROUP_INTERVIEW,
    2: Step.PRELIMINARY_INTERVIEW,
    3: Step.SECONDARY_INTERVIEW,
    5: Step.HR_INTERVIEW,
}

_ROUND_TWO_STEPS = {
    1: Step.EMPLOYER_ASSESSMENT,
    2: Step.EMPLOYEE_CONFIRMATION,
    3: Step.OFFER_CONFIRMATION,
}

# status values shared by every section of the payload
_STATUS_PENDING = 1
_STATUS_ACTIVE = 2
_STATUS_PASSED = 3


@dataclass(slots=True)
class ListItem:
    step_id: int
    status: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ListItem":
        return cls(step_id=int(data["stepId"]), status=int(data["status"]))


@dataclass(slots=True)
class CurrentStatus:
    status: int
    apply_process_type: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CurrentStatus":
        return cls(status=int(data["status"]), apply_process_type=int(data["applyProcessType"]))


@dataclass(slots=True)
class PositionInfo:
    apply_position_txt: str
    interview_position_txt: str
    sub_direction_id_txt: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PositionInfo":
        return cls(
            apply_position_txt=str(data["applyPositionTxt"]),
            interview_position_txt=str(data["interviewPositionTxt"]),
            sub_direction_id_txt=data.get("subDirectionIdTxt"),
        )


@dataclass(slots=True)
class ResumeStatus:
    status: int
    is_public: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResumeStatus":
        return cls(status=int(data["status"]), is_public=int(data["isPublic"]))


@dataclass(slots=True)
class AssessmentInfo:
    status: int
    test_address: str
    mobile_tail: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssessmentInfo":
        return cls(
            status=int(data["status"]),
            test_address=str(data["testAddress"]),
            mobile_tail=str(data["mobileTail"]),
        )


@dataclass(slots=True)
class WrittenTestInfo:
    status: int
    item_list: List[ListItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WrittenTestInfo":
        return cls(status=int(data["status"]), item_list=_items(data))


@dataclass(slots=True)
class CampusRecruitOne:
    id: int
    recruit_type: int
    type_name: str
    item_list: List[ListItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CampusRecruitOne":
        return cls(
            id=int(data["id"]),
            recruit_type=int(data["recruitType"]),
            type_name=str(data["typeName"]),
            item_list=_items(data),
        )


@dataclass(slots=True)
class CampusRecruitTwo:
    bgid: int
    reply_token: Optional[str] = None
    item_list: List[ListItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CampusRecruitTwo":
        return cls(
            bgid=int(data["bgid"]),
            reply_token=data.get("replyToken"),
            item_list=_items(data),
        )


@dataclass(slots=True)
class ApplicationProgress:
    """Full application state of one account at one point in time."""

    resume_id: int
    current_status: CurrentStatus
    assessment_info: AssessmentInfo
    position_info: PositionInfo
    resume_status: ResumeStatus
    written_test_info: WrittenTestInfo
    campus_recruit_one: CampusRecruitOne
    campus_recruit_two: CampusRecruitTwo

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ApplicationProgress":
        """Build an instance from the camelCase ``data`` object of the API."""

        try:
            return cls(
                resume_id=int(data["resumeId"]),
                current_status=CurrentStatus.from_dict(data["currentStatus"]),
                assessment_info=AssessmentInfo.from_dict(data["assessmentInfo"]),
                position_info=PositionInfo.from_dict(data["positionInfo"]),
                resume_status=ResumeStatus.from_dict(data["resumeStatus"]),
                written_test_info=WrittenTestInfo.from_dict(data["writtenTestInfo"]),
                campus_recruit_one=CampusRecruitOne.from_dict(data["campusRecruitOne"]),
                campus_recruit_two=CampusRecruitTwo.from_dict(data["campusRecruitTwo"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProgressParseError(f"malformed application progress: {exc!r}") from exc

    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase representation accepted by :meth:`from_dict`."""

        return _camelize(asdict(self))

    def current_step(self) -> Optional[Step]:
        """Work out which recruitment step the application is at.

        ``None`` means the application has not started or is between rounds.
        Raises :class:`UnknownStepError` for step ids outside the known
        interview rounds.
        """

        if self.resume_status.status < _STATUS_PASSED:
            if self.resume_status.status < _STATUS_ACTIVE:
                return None
            return Step.CV_DELIVERANCE

        if self.assessment_info.status == _STATUS_ACTIVE:
            return Step.EXAMINATION
        if self.written_test_info.status == _STATUS_ACTIVE:
            return Step.WRITTEN_TEST

        round_one = sorted(self.campus_recruit_one.item_list, key=lambda item: item.step_id, reverse=True)
        active = _first_active(round_one)
        if active is not None:
            return _lookup_step(_ROUND_ONE_STEPS, active.step_id)
        if round_one and round_one[-1].status == _STATUS_PENDING and round_one[0].status < _STATUS_PASSED:
            return None

        round_two = sorted(self.campus_recruit_two.item_list, key=lambda item: item.step_id, reverse=True)
        active = _first_active(round_two)
        if active is not None:
            return _lookup_step(_ROUND_TWO_STEPS, active.step_id)

        return Step.COMPLETED


def _items(data: Mapping[str, Any]) -> List[ListItem]:
    return [ListItem.from_dict(item) for item in data.get("itemList") or []]


def _first_active(items: List[ListItem]) -> Optional[ListItem]:
    for item in items:
        if item.status == _STATUS_ACTIVE:
            return item
    return None


def _lookup_step(table: Mapping[int, Step], step_id: int) -> Step:
    try:
        return table[step_id]
    except KeyError:
        raise UnknownStepError(step_id) from None


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel_key(key): _camelize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_camelize(item) for item in value]
    return value


def _camel_key(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


__all__ = [
    "ApplicationProgress",
    "AssessmentInfo",
    "CampusRecruitOne",
    "CampusRecruitTwo",
    "CurrentStatus",
    "ListItem",
    "PositionInfo",
    "ProgressParseError",
    "ResumeStatus",
    "Step",
    "UnknownStepError",
    "WrittenTestInfo",
]
