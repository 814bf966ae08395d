from .access import build_aggregate_context, can_read_event, can_write_event  # noqa: F401
from .store import AggregateContext, EventStore  # noqa: F401
from .supplier import ProgramSupplier  # noqa: F401
