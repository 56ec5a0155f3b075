"""
Naming convention utilities for schema-codegen.

Schema identifiers (snake_case, mixed case, or containing characters that are
not valid in code) are converted into code identifiers with these rules,
applied in order:

1. Split on non-alphanumeric boundaries and case transitions.
2. Re-join as UpperCamel (type names) or lowerCamel (field names).
3. Prefix an underscore when the result does not start with a letter.
4. Resolve collisions inside a scope (see ``NameScope``).

Enum case names use the same split but are joined as UPPER_SNAKE.
"""

import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

import inflect

from schema_codegen.exceptions import EnumCollisionError


# Initialize inflect engine for singularization
p = inflect.engine()

EMPTY_ENUM_CASE = "EMPTY_VALUE"
UNNAMED = "unnamed"


def split_words(name: str) -> List[str]:
    """
    Split an identifier into words on separators and case transitions.

    Example:
        >>> split_words("user_accountID")
        ['user', 'account', 'ID']
        >>> split_words("XMLHttpRequest")
        ['XML', 'Http', 'Request']
        >>> split_words("2fa-enabled")
        ['2fa', 'enabled']
    """
    if not isinstance(name, str):
        raise TypeError(f"Expected string, got {type(name).__name__}")

    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    name = re.sub(r"__([A-Z])", r"_\1", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return [word for word in re.split(r"[\W_]+", name) if word]


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def ensure_leading_letter(name: str) -> str:
    """Prefix an underscore when ``name`` does not start with a letter."""
    if name and not name[0].isalpha():
        return "_" + name
    return name


def to_upper_camel(name: str) -> str:
    """
    Convert an identifier to UpperCamel.

    Example:
        >>> to_upper_camel("order_items")
        'OrderItems'
        >>> to_upper_camel("2fa_enabled")
        '_2faEnabled'
    """
    words = split_words(name) or [UNNAMED]
    return ensure_leading_letter("".join(_capitalize(word) for word in words))


def to_lower_camel(name: str) -> str:
    """
    Convert an identifier to lowerCamel.

    Example:
        >>> to_lower_camel("parent_id")
        'parentId'
    """
    words = split_words(name) or [UNNAMED]
    joined = words[0].lower() + "".join(_capitalize(word) for word in words[1:])
    return ensure_leading_letter(joined)


def to_snake_case(name: str) -> str:
    """
    Convert an identifier to snake_case (used for Python module names).

    Example:
        >>> to_snake_case("ProductStatusEnum")
        'product_status_enum'
    """
    words = split_words(name) or [UNNAMED]
    return ensure_leading_letter("_".join(word.lower() for word in words))


def to_enum_case(raw_value: str) -> str:
    """
    Convert a raw enumerated value to an UPPER_SNAKE case name.

    Example:
        >>> to_enum_case("PG-13")
        'PG_13'
        >>> to_enum_case("2fa_enabled")
        '_2FA_ENABLED'
        >>> to_enum_case("")
        'EMPTY_VALUE'
    """
    words = split_words(raw_value)
    if not words:
        return EMPTY_ENUM_CASE
    return ensure_leading_letter("_".join(word.upper() for word in words))


def sanitize_raw_name(raw: str) -> str:
    """Collapse every run of non-identifier characters to a single underscore."""
    return re.sub(r"\W+", "_", raw).strip("_")


def singularize_last_word(name: str) -> str:
    """Singularize the last word of a snake_case table name using inflect."""
    words = name.split("_")
    singular = p.singular_noun(words[-1])
    if singular:
        words[-1] = singular
    return "_".join(words)


class NameScope:
    """
    A set of names that must stay unique (a table's members, or the run's
    type names).

    Candidates are assigned in batches so that the outcome never depends on
    the order in which the database returned them. Within a group of
    candidates sharing a base name, a candidate whose raw name already equals
    the base keeps it, otherwise the lexicographically smallest raw name
    does. The others receive ``{base}_{raw}`` and, only if that is taken too,
    a numeric suffix starting at 2.
    """

    def __init__(self, taken: Optional[Iterable[str]] = None):
        self._taken: Set[str] = set(taken or ())

    def __contains__(self, name: str) -> bool:
        return name in self._taken

    @property
    def names(self) -> FrozenSet[str]:
        return frozenset(self._taken)

    def reserve(self, name: str) -> None:
        self._taken.add(name)

    def claim(self, candidates: Iterable[str]) -> str:
        """Take the first free name out of ``candidates``, else number the first."""
        candidates = list(candidates)
        for candidate in candidates:
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
        return self._numbered(candidates[0])

    def assign(self, candidates: Iterable[Tuple[str, str]]) -> Dict[str, str]:
        """
        Assign final names to ``(raw_name, base_name)`` candidates.

        Returns a mapping ``raw_name -> final name``.
        """
        groups: Dict[str, List[str]] = {}
        for raw, base in candidates:
            groups.setdefault(base, []).append(raw)

        assigned: Dict[str, str] = {}
        losers: List[Tuple[str, str]] = []

        for base in sorted(groups):
            members = sorted(set(groups[base]), key=lambda raw: (raw != base, raw))
            winner, rest = members[0], members[1:]
            if base not in self._taken:
                self._taken.add(base)
                assigned[winner] = base
            else:
                losers.append((base, winner))
            losers.extend((base, raw) for raw in rest)

        for base, raw in sorted(losers):
            suffix = sanitize_raw_name(raw)
            candidate = f"{base}_{suffix}" if suffix else base
            if candidate not in self._taken:
                self._taken.add(candidate)
                assigned[raw] = candidate
            else:
                assigned[raw] = self._numbered(base)

        return assigned

    def _numbered(self, base: str) -> str:
        counter = 2
        while f"{base}{counter}" in self._taken:
            counter += 1
        name = f"{base}{counter}"
        self._taken.add(name)
        return name


class NameNormalizer:
    """
    Converts schema identifiers into code identifiers for one template set.

    Args:
        reserved_words: Words that cannot be used as identifiers in the
            target language. A normalized name equal to one of them gets a
            trailing underscore.
        reserved_case_insensitive: Compare reserved words ignoring case.
        singularize_entity_names: Singularize the last word of table names
            before converting them to type names.
    """

    def __init__(
        self,
        reserved_words: Iterable[str] = (),
        reserved_case_insensitive: bool = False,
        singularize_entity_names: bool = False,
    ):
        self.reserved_case_insensitive = reserved_case_insensitive
        if reserved_case_insensitive:
            self.reserved_words = frozenset(word.lower() for word in reserved_words)
        else:
            self.reserved_words = frozenset(reserved_words)
        self.singularize_entity_names = singularize_entity_names

    def is_reserved(self, name: str) -> bool:
        key = name.lower() if self.reserved_case_insensitive else name
        return key in self.reserved_words

    def _unreserve(self, name: str) -> str:
        return f"{name}_" if self.is_reserved(name) else name

    def type_name(self, table_name: str) -> str:
        source = singularize_last_word(table_name) if self.singularize_entity_names else table_name
        return self._unreserve(to_upper_camel(source))

    def field_name(self, column_name: str) -> str:
        return self._unreserve(to_lower_camel(column_name))

    def instance_name(self, type_name: str) -> str:
        """The conventional identifier for an instance of ``type_name``."""
        return self._unreserve(to_lower_camel(type_name))

    def enum_type_name(self, table_name: str, column_name: str) -> str:
        return self._unreserve(to_upper_camel(f"{table_name}_{column_name}") + "Enum")

    def repository_name(self, type_name: str) -> str:
        return f"{type_name}Repository"

    def enum_cases(
        self,
        values: Iterable[str],
        table: Optional[str] = None,
        column: Optional[str] = None,
    ) -> List[Tuple[str, str]]:
        """
        Build ``(raw_value, case_name)`` pairs in declaration order.

        Raises:
            EnumCollisionError: two distinct raw values normalize to the same
                case name. They are never merged, since that would lose
                information.
        """
        cases: List[Tuple[str, str]] = []
        seen: Dict[str, str] = {}
        for raw in values:
            case_name = self._unreserve(to_enum_case(raw))
            if case_name in seen:
                raise EnumCollisionError(
                    f"Enum values {seen[case_name]!r} and {raw!r} both normalize to case '{case_name}'",
                    table=table,
                    column=column,
                    case_name=case_name,
                    values=[seen[case_name], raw],
                )
            seen[case_name] = raw
            cases.append((raw, case_name))
        return cases
