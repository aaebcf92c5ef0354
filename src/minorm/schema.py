"""Schema generator: ``CREATE TABLE`` from entity metadata.

>>> from dataclasses import dataclass
>>> from typing import Annotated
>>> from minorm.markers import GeneratedValue, Id
>>> @dataclass
... class Person:
...     id: Annotated[int | None, Id, GeneratedValue] = None
...     name: str | None = None
>>> print(create_table_sql(Person))
CREATE TABLE PERSON (ID INTEGER AUTO_INCREMENT,
PRIMARY KEY (ID), NAME VARCHAR(255))
"""

from contextlib import closing

from minorm.dialect import Dialect, StandardDialect
from minorm.logging import get_logger
from minorm.metadata import entity_info
from minorm.transaction import current_session, database_errors

logger = get_logger(__name__)

_STANDARD = StandardDialect()


def create_table_sql(entity_type: type, dialect: Dialect | None = None) -> str:
    """Render the ``CREATE TABLE`` statement for ``entity_type``.

    Columns follow property declaration order. Defaults to the standard
    rendering; pass the session's dialect to get executable SQL.
    """
    info = entity_info(entity_type)
    return (dialect or _STANDARD).create_table(info.table_name, info.properties)


def create_table(entity_type: type) -> None:
    """Create ``entity_type``'s table on the current transaction's connection.

    Raises:
        NoActiveTransactionError: outside a transaction.
        ConfigurationError: invalid entity shape.
        DatabaseError: the statement failed.
    """
    session = current_session()
    sql = create_table_sql(entity_type, session.dialect)
    with database_errors(session.driver_errors, "create table", sql=sql):
        with closing(session.connection.cursor()) as cursor:
            cursor.execute(sql)
    logger.info("table_created", table=entity_info(entity_type).table_name)


__all__ = [
    "create_table_sql",
    "create_table",
]
