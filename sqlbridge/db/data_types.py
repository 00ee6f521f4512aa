"""PostgreSQL type catalog.

Static table of the column types the DDL synthesizer accepts, grouped the
way editors present them, with the length/precision rule for each type.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TypeInfo:
    """A supported column type and its modifiers."""
    name: str
    length: bool = False
    collation: bool = False
    unsigned: bool = False
    zerofill: bool = False


@dataclass(frozen=True)
class TypeGroup:
    """A named group of related column types."""
    group: str
    types: Tuple[TypeInfo, ...]


POSTGRESQL_TYPES: List[TypeGroup] = [
    TypeGroup('integer', (
        TypeInfo('SMALLINT'),
        TypeInfo('INTEGER'),
        TypeInfo('BIGINT'),
        TypeInfo('SMALLSERIAL'),
        TypeInfo('SERIAL'),
        TypeInfo('BIGSERIAL'),
    )),
    TypeGroup('float', (
        TypeInfo('REAL'),
        TypeInfo('DOUBLE PRECISION'),
        TypeInfo('NUMERIC', length=True),
        TypeInfo('MONEY'),
    )),
    TypeGroup('string', (
        TypeInfo('CHARACTER', length=True, collation=True),
        TypeInfo('CHARACTER VARYING', length=True, collation=True),
        TypeInfo('TEXT', collation=True),
        TypeInfo('"CHAR"', collation=True),
        TypeInfo('NAME'),
        TypeInfo('CITEXT', collation=True),
    )),
    TypeGroup('time', (
        TypeInfo('DATE'),
        TypeInfo('TIME', length=True),
        TypeInfo('TIME WITH TIME ZONE', length=True),
        TypeInfo('TIMESTAMP', length=True),
        TypeInfo('TIMESTAMP WITHOUT TIME ZONE', length=True),
        TypeInfo('TIMESTAMP WITH TIME ZONE', length=True),
        TypeInfo('INTERVAL', length=True),
    )),
    TypeGroup('binary', (
        TypeInfo('BYTEA'),
        TypeInfo('BIT', length=True),
        TypeInfo('BIT VARYING', length=True),
    )),
    TypeGroup('uuid', (
        TypeInfo('UUID'),
    )),
    TypeGroup('json', (
        TypeInfo('JSON'),
        TypeInfo('JSONB'),
        TypeInfo('XML'),
    )),
    TypeGroup('network', (
        TypeInfo('CIDR'),
        TypeInfo('INET'),
        TypeInfo('MACADDR'),
        TypeInfo('MACADDR8'),
    )),
    TypeGroup('geometry', (
        TypeInfo('POINT'),
        TypeInfo('LINE'),
        TypeInfo('LSEG'),
        TypeInfo('BOX'),
        TypeInfo('PATH'),
        TypeInfo('POLYGON'),
        TypeInfo('CIRCLE'),
    )),
    TypeGroup('other', (
        TypeInfo('BOOLEAN'),
        TypeInfo('TSVECTOR'),
        TypeInfo('TSQUERY'),
        TypeInfo('PG_LSN'),
        TypeInfo('TXID_SNAPSHOT'),
        TypeInfo('INT4RANGE'),
        TypeInfo('INT8RANGE'),
        TypeInfo('NUMRANGE'),
        TypeInfo('TSRANGE'),
        TypeInfo('TSTZRANGE'),
        TypeInfo('DATERANGE'),
    )),
]

# Internal array element encodings reported by information_schema.columns.udt_name
ARRAY_TYPES: Dict[str, str] = {
    '_int2': 'SMALLINT',
    '_int4': 'INTEGER',
    '_int8': 'BIGINT',
    '_float4': 'REAL',
    '_float8': 'DOUBLE PRECISION',
    '_char': '"CHAR"',
    '_varchar': 'CHARACTER VARYING',
}

# Serial pseudo-types and the storage type they stand for
SERIAL_TYPES: Dict[str, str] = {
    'SMALLSERIAL': 'smallint',
    'SERIAL': 'integer',
    'BIGSERIAL': 'bigint',
}

_TYPE_INDEX: Dict[str, TypeInfo] = {
    type_info.name: type_info
    for group in POSTGRESQL_TYPES
    for type_info in group.types
}


def get_type_info(type_name: str) -> Optional[TypeInfo]:
    """Look up a type by name, case-insensitively."""
    return _TYPE_INDEX.get(type_name.upper())


def accepts_length(type_name: str) -> bool:
    """True when the type takes a length/precision modifier.

    Unknown types (domains, enums, extension types) never take one.
    """
    type_info = get_type_info(type_name)
    return bool(type_info and type_info.length)


def get_array_type(udt_name: str) -> str:
    """Map an internal array encoding such as ``_int4`` to its element type.

    Unmapped encodings fall back to stripping the leading underscore marker,
    so ``_custom`` becomes ``custom``.
    """
    if udt_name in ARRAY_TYPES:
        return ARRAY_TYPES[udt_name]
    return udt_name.replace('_', '', 1)


def local_type(type_name: str) -> str:
    """Storage type used in ``ALTER COLUMN ... TYPE`` for ``type_name``."""
    return SERIAL_TYPES.get(type_name.upper(), type_name.lower())


def is_serial(type_name: str) -> bool:
    """True for the serial pseudo-types that need an owned sequence."""
    return type_name.upper() in SERIAL_TYPES
