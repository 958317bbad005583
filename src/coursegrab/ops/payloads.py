"""
Pydantic models for untrusted target payloads.

The front door hands the operations raw dicts as they arrived over the wire.
Both the engine's own field names and the reservation system's native ones
are accepted::

    course_id     kch_id       course (curriculum) identifier
    class_id      jxb_id       teaching-class identifier
    offering_id   do_jxb_id    encrypted offering id the remote call needs
    label         kcmc         course name shown to the user
    section_name  jxbmc        teaching-class name
    class_type    jxbzls       defaults to "1"
    course_type   kklxdm       defaults to "01"

Identifiers are optional at this layer: a payload missing one still parses,
and :meth:`TargetPayload.missing_ids` lets the batch operation turn it into a
failed outcome for that item instead of rejecting the whole batch.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coursegrab.execution.models import AttemptTarget

UNKNOWN_COURSE = "unknown course"


class TargetPayload(BaseModel):
    """One course section as submitted by a caller."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", str_strip_whitespace=True)

    course_id: str | None = Field(default=None, alias="kch_id", description="Course identifier")
    class_id: str | None = Field(default=None, alias="jxb_id", description="Teaching-class identifier")
    offering_id: str | None = Field(default=None, alias="do_jxb_id", description="Offering identifier")
    label: str | None = Field(default=None, alias="kcmc", description="Course name")
    section_name: str | None = Field(default=None, alias="jxbmc", description="Teaching-class name")
    class_type: str = Field(default="1", alias="jxbzls")
    course_type: str = Field(default="01", alias="kklxdm")

    def missing_ids(self) -> list[str]:
        return [
            name
            for name in ("course_id", "class_id", "offering_id")
            if not getattr(self, name)
        ]

    @property
    def target_id(self) -> str:
        return f"{self.course_id}_{self.class_id}"

    @property
    def display_name(self) -> str:
        return self.label or UNKNOWN_COURSE

    def to_target(self) -> AttemptTarget:
        """Build the engine target; call only when :meth:`missing_ids` is empty."""
        extra: dict[str, Any] = dict(self.model_extra or {})
        return AttemptTarget.for_section(
            self.course_id or "",
            self.class_id or "",
            label=self.display_name,
            offering_id=self.offering_id,
            section_name=self.section_name or "",
            class_type=self.class_type,
            course_type=self.course_type,
            **extra,
        )
