"""Entity mapper: rows to objects and objects to statement parameters.

Read path: one new instance per row, properties filled positionally in
declaration order. Write path: an upsert listing every column, parameters
bound in the same order, then the generated identifier (if any) written back
into the entity.

Column ``n`` of a row is property ``n`` of the entity. ``SELECT *`` against a
table created by :func:`minorm.schema.create_table` satisfies this; a
hand-written ``@query`` must select the columns in the same order.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import closing
from typing import Any

from minorm.dialect import Dialect
from minorm.errors import ConfigurationError
from minorm.logging import get_logger
from minorm.metadata import EntityInfo, entity_info
from minorm.settings import get_settings
from minorm.transaction import Session, current_session, database_errors

logger = get_logger(__name__)


def _log_sql(sql: str, params: Sequence[Any]) -> None:
    log = logger.info if get_settings().echo_sql else logger.debug
    log("sql_executed", sql=sql, param_count=len(params))


def row_to_entity(row: Sequence[Any], info: EntityInfo) -> Any:
    """Build one entity from a result row, column ``n`` into property ``n``."""
    if len(row) < len(info.properties):
        raise ConfigurationError(
            f"row has {len(row)} columns, entity {info.entity_type.__name__} "
            f"maps {len(info.properties)}",
            context={"table": info.table_name},
        )
    instance = info.new_instance()
    for index, prop in enumerate(info.properties):
        prop.set(instance, row[index])
    return instance


def entity_params(entity: Any, info: EntityInfo) -> tuple[Any, ...]:
    """Property values of ``entity`` in declaration order."""
    return tuple(prop.get(entity) for prop in info.properties)


def save_sql(info: EntityInfo, dialect: Dialect) -> str:
    return dialect.upsert(info.table_name, info.column_names)


def select_entities(
    session: Session,
    sql: str,
    info: EntityInfo,
    args: Sequence[Any] = (),
) -> list[Any]:
    """Execute ``sql`` with ``args`` bound positionally and map every row."""
    params = tuple(args)
    with database_errors(session.driver_errors, "query", sql=sql):
        with closing(session.connection.cursor()) as cursor:
            _log_sql(sql, params)
            cursor.execute(sql, params)
            rows = cursor.fetchall()
    return [row_to_entity(row, info) for row in rows]


def save_entity(session: Session, info: EntityInfo, entity: Any) -> Any:
    """Upsert ``entity`` and propagate a generated identifier back into it."""
    sql = save_sql(info, session.dialect)
    params = entity_params(entity, info)
    id_property = info.id_property
    with database_errors(session.driver_errors, "save", sql=sql):
        with closing(session.connection.cursor()) as cursor:
            _log_sql(sql, params)
            cursor.execute(sql, params)
            key = (
                session.dialect.generated_key(cursor)
                if id_property is not None and id_property.is_generated
                else None
            )
    if key is not None:
        id_property.set(entity, key)  # type: ignore[union-attr]
    return entity


def find_all(entity_type: type) -> list[Any]:
    """All rows of ``entity_type``'s table, on the current transaction."""
    session = current_session()
    info = entity_info(entity_type)
    return select_entities(session, session.dialect.select_all(info.table_name), info)


def save(entity: Any) -> Any:
    """Upsert ``entity`` on the current transaction."""
    session = current_session()
    return save_entity(session, entity_info(type(entity)), entity)


__all__ = [
    "row_to_entity",
    "entity_params",
    "save_sql",
    "select_entities",
    "save_entity",
    "find_all",
    "save",
]
