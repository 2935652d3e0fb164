"""fluentQL query layer: the fluent builder, its clause records and processors."""
from fluentql.query.builder import Builder
from fluentql.query.expression import Expression, HasSqlAndBindings, raw
from fluentql.query.join_clause import JoinClause
from fluentql.query.processors import Processor

__all__ = [
    "Builder",
    "Expression",
    "HasSqlAndBindings",
    "JoinClause",
    "Processor",
    "raw",
]
