"""Event-level access decisions over the programs loaded by ProgramSupplier.

Unlike the aggregate checks, a missing user is denied here: event export
and import always run on behalf of an authenticated user.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..acl import AclService
from ..models import Program, ProgramStage, User
from .store import AggregateContext

NO_USER = "No user given for event access check"


def can_write_event(
    acl: AclService,
    user: User | None,
    program: Program,
    program_stage: ProgramStage | None,
) -> list[str]:
    """Violations for writing an event in ``program_stage`` of ``program``.

    Event programs need data write on the program; registration programs
    need data write on the stage and data read on the tracked entity type.
    """
    if user is None:
        return [NO_USER]
    if user.is_super:
        return []

    errors = []
    if program.is_registration:
        if program_stage is None:
            errors.append(f"Program stage is required for program: {program.uid}")
        elif not acl.can_data_write(user, program_stage):
            errors.append(f"User has no data write access to program stage: {program_stage.uid}")

        tet = program.tracked_entity_type
        if tet is not None and not acl.can_data_read(user, tet):
            errors.append(f"User has no data read access to tracked entity type: {tet.uid}")
    elif not acl.can_data_write(user, program):
        errors.append(f"User has no data write access to program: {program.uid}")

    return errors


def can_read_event(
    acl: AclService,
    user: User | None,
    program: Program,
    program_stage: ProgramStage | None,
) -> list[str]:
    if user is None:
        return [NO_USER]
    if user.is_super:
        return []

    errors = []
    if not acl.can_data_read(user, program):
        errors.append(f"User has no data read access to program: {program.uid}")
    if program_stage is not None and not acl.can_data_read(user, program_stage):
        errors.append(f"User has no data read access to program stage: {program_stage.uid}")
    return errors


def build_aggregate_context(
    acl: AclService,
    user: User | None,
    programs: Iterable[Program],
) -> AggregateContext:
    """Collect the program, stage and tracked entity type ids ``user`` may read data of."""
    if user is None:
        return AggregateContext()
    if user.is_super:
        return AggregateContext(user_id=user.id, super_user=True)

    program_ids: list[int] = []
    stage_ids: list[int] = []
    tet_ids: list[int] = []
    for program in programs:
        if not acl.can_data_read(user, program):
            continue
        program_ids.append(program.id)
        stage_ids.extend(
            stage.id for stage in program.program_stages if acl.can_data_read(user, stage)
        )
        tet = program.tracked_entity_type
        if tet is not None and tet.id not in tet_ids and acl.can_data_read(user, tet):
            tet_ids.append(tet.id)

    return AggregateContext(
        user_id=user.id,
        super_user=False,
        programs=tuple(program_ids),
        program_stages=tuple(stage_ids),
        tracked_entity_types=tuple(tet_ids),
    )
