"""Feature-level closure for Vulkan registry code generators.

Computes, for one vk.xml <feature> (or <extension>) declaration, the closed set
of type and value definitions a generator has to emit, and partitions that set
by category so each emitter gets only its own slice.

Usage:
    root = vkfeat.load_registry_root(Path("vk.xml"))
    levels = vkfeat.resolve_feature_levels(root, ["VK_VERSION_1_0", "VK_VERSION_1_1"])
"""

import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple


# ===--- Config contracts ---=== #


class VulkanVersion(NamedTuple):
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


VALID_ERROR_CODES = {
    "INVALID_VERSION",
    "MISSING_TARGET",
    "PATH_NOT_FOUND",
    "INVALID_XML",
    "FEATURE_NOT_FOUND",
    "MALFORMED_FEATURE",
    "MALFORMED_ENUM",
}
_FEATURE_NUMBER_RE = re.compile(r"^(\d+)\.(\d+)$")


class RegistryError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown registry error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_feature_version(raw: str | None) -> VulkanVersion:
    match = _FEATURE_NUMBER_RE.match(raw.strip()) if raw else None
    if match is None:
        raise RegistryError(
            "INVALID_VERSION",
            f"Invalid feature version: {raw!r}",
            "Feature numbers are <major>.<minor>, for example 1.3.",
        )
    return VulkanVersion(int(match.group(1)), int(match.group(2)))


def validate_path_exists(
    path: Path | None, label: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise RegistryError(
            "PATH_NOT_FOUND",
            f"{label} is required: no path provided.",
            suggestion or f"Pass the path to {label} explicitly.",
        )
    if path.exists():
        return path
    raise RegistryError(
        "PATH_NOT_FOUND",
        f"Path for {label} does not exist: {path}",
        suggestion or "Provide an existing path.",
    )


@dataclass(frozen=True)
class ResolveConfig:
    vk_xml: Path
    feature_names: tuple[str, ...]
    version: VulkanVersion | None
    api: str


def build_resolve_config(
    vk_xml: Path | None,
    feature_names: Iterable[str] = (),
    version: str | None = None,
    api: str = "vulkan",
) -> ResolveConfig:
    """Validate caller input into a ResolveConfig.

    Either explicit feature names or a version must be given. With only a
    version, every feature level up to it is resolved (see feature_names_up_to).

    Raises:
        RegistryError: PATH_NOT_FOUND, INVALID_VERSION or MISSING_TARGET. A bare
            string for feature_names is rejected with MISSING_TARGET.
    """
    path = validate_path_exists(
        vk_xml, "vk.xml", "Point vk_xml at Vulkan-Docs/xml/vk.xml."
    )
    if isinstance(feature_names, str):
        raise RegistryError(
            "MISSING_TARGET",
            f"Invalid feature_names value type: {type(feature_names).__name__}",
            'Pass feature names as a list, for example ["VK_VERSION_1_1"].',
        )
    names = tuple(name.strip() for name in feature_names if name.strip())
    parsed_version = parse_feature_version(version) if version is not None else None
    if not names and parsed_version is None:
        raise RegistryError(
            "MISSING_TARGET",
            "No feature level requested.",
            "Pass feature names (for example VK_VERSION_1_1) or a version such as 1.3.",
        )
    return ResolveConfig(
        vk_xml=path,
        feature_names=names,
        version=parsed_version,
        api=api,
    )


# ===--- Constants ---=== #

API_CONSTANTS_BLOCK = "API Constants"

CATEGORY_COMMAND = "command"
CATEGORY_NONE = "none"
CATEGORY_EXTENSION = "extension"

ENUM_BASE_VALUE = 1000000000
ENUM_RANGE_SIZE = 1000

_RESOLVE_SAFETY_LIMIT = 1000


# ===--- Definitions ---=== #


@dataclass
class IncludeSet:
    """Transitive bundle reported by resolving a single definition.

    Attributes:
        include_types: Names of every type the definition pulled in.
        include_values: Names of every value the definition pulled in.
        resolved_types: Registry definitions for include_types.
        resolved_values: Registry definitions for include_values.
    """

    include_types: set[str] = field(default_factory=set)
    include_values: set[str] = field(default_factory=set)
    resolved_types: dict[str, "TypeDef"] = field(default_factory=dict)
    resolved_values: dict[str, "ValueDef"] = field(default_factory=dict)


def _close_over(
    result: IncludeSet,
    type_names: Iterable[str],
    value_names: Iterable[str],
    tr: "TypeRegistry",
    vr: "ValueRegistry",
) -> IncludeSet:
    """Walk type and value references until no new registry name appears.

    Names missing from the registries are skipped. Each name is visited once,
    so self-referencing structs terminate.
    """
    pending_types = list(type_names)
    pending_values = list(value_names)
    while pending_types or pending_values:
        while pending_types:
            name = pending_types.pop()
            if name in result.resolved_types:
                continue
            td = tr.get(name)
            if td is None:
                continue
            result.include_types.add(name)
            result.resolved_types[name] = td
            pending_types.extend(td.type_refs)
            pending_values.extend(td.value_refs)
        while pending_values:
            name = pending_values.pop()
            if name in result.resolved_values:
                continue
            vd = vr.get(name)
            if vd is None:
                continue
            result.include_values.add(name)
            result.resolved_values[name] = vd
            pending_types.append(vd.underlying_type_name)
            if vd.alias:
                pending_values.append(vd.alias)
    return result


class TypeDef:
    def __init__(
        self,
        name: str,
        category: str,
        type_refs: Iterable[str] = (),
        value_refs: Iterable[str] = (),
        alias: str | None = None,
    ):
        self.name = name
        self.category = category or CATEGORY_NONE
        self.alias = alias
        refs = set(type_refs)
        if alias:
            refs.add(alias)
        refs.discard(name)
        self.type_refs = frozenset(refs)
        self.value_refs = frozenset(value_refs)

    def resolve(self, tr: "TypeRegistry", vr: "ValueRegistry") -> IncludeSet:
        """Return this type plus everything it transitively references."""
        result = IncludeSet()
        result.include_types.add(self.name)
        result.resolved_types[self.name] = self
        return _close_over(result, self.type_refs, self.value_refs, tr, vr)


class ValueDef:
    def __init__(
        self,
        name: str,
        underlying_type_name: str,
        is_core: bool = False,
        alias: str | None = None,
        resolved_type: TypeDef | None = None,
    ):
        self.name = name
        self.underlying_type_name = underlying_type_name
        self.is_core = is_core
        self.alias = alias
        self.resolved_type = resolved_type

    @property
    def category(self) -> str:
        if self.resolved_type is None:
            return CATEGORY_EXTENSION
        return self.resolved_type.category

    def resolve(self, tr: "TypeRegistry", vr: "ValueRegistry") -> IncludeSet:
        """Return the owning type's closure and the alias target, if any.

        The value itself is not part of the bundle; Feature.resolve registers
        it explicitly. Binds resolved_type from tr when it is still unset.
        """
        if self.resolved_type is None:
            self.resolved_type = tr.get(self.underlying_type_name)
        aliases = [self.alias] if self.alias else []
        return _close_over(IncludeSet(), [self.underlying_type_name], aliases, tr, vr)


class EnumValue(ValueDef):
    def __init__(
        self,
        name: str,
        underlying_type_name: str,
        value: int | None,
        is_core: bool = False,
        alias: str | None = None,
        resolved_type: TypeDef | None = None,
    ):
        super().__init__(name, underlying_type_name, is_core, alias, resolved_type)
        self.value = value


class BitmaskValue(ValueDef):
    def __init__(
        self,
        name: str,
        underlying_type_name: str,
        bitpos: int,
        is_core: bool = False,
        resolved_type: TypeDef | None = None,
    ):
        super().__init__(name, underlying_type_name, is_core, None, resolved_type)
        self.bitpos = bitpos

    @property
    def value(self) -> int:
        return 1 << self.bitpos


class ConstantValue(ValueDef):
    def __init__(
        self,
        name: str,
        value_text: str | None,
        c_type: str | None = None,
        alias: str | None = None,
    ):
        super().__init__(name, API_CONSTANTS_BLOCK, True, alias)
        self.value_text = value_text
        self.c_type = c_type


TypeRegistry = dict[str, TypeDef]
ValueRegistry = dict[str, ValueDef]


# ===--- Definition parsing ---=== #


def _element_name(el: ET.Element) -> str | None:
    name = el.get("name")
    if name:
        return name
    name_el = el.find("name")
    if name_el is not None and name_el.text:
        return name_el.text.strip()
    proto_name = el.find("proto/name")
    if proto_name is not None and proto_name.text:
        return proto_name.text.strip()
    return None


def _referenced_names(el: ET.Element, tag: str) -> set[str]:
    return {
        child.text.strip()
        for child in el.iter(tag)
        if child is not el and child.text and child.text.strip()
    }


def _split_attr_list(raw: str | None) -> set[str]:
    if not raw:
        return set()
    return {token.strip() for token in raw.split(",") if token.strip()}


def parse_type_element(el: ET.Element) -> TypeDef | None:
    """Build a TypeDef from a types/type element.

    References are every nested <type> name (members, typedef targets, handle
    macros), the `requires`/`bitvalues` attributes, and the alias target.
    Value references are nested <enum> array sizes and member `values`.

    Returns:
        TypeDef, or None when the element carries no name.
    """
    name = _element_name(el)
    if not name:
        return None
    type_refs = _referenced_names(el, "type")
    for attr in ("requires", "bitvalues"):
        ref = el.get(attr)
        if ref:
            type_refs.add(ref)
    value_refs = _referenced_names(el, "enum")
    for member in el.findall("member"):
        value_refs |= _split_attr_list(member.get("values"))
    return TypeDef(
        name,
        el.get("category", ""),
        type_refs=type_refs,
        value_refs=value_refs,
        alias=el.get("alias"),
    )


def parse_command_element(el: ET.Element) -> TypeDef | None:
    name = _element_name(el)
    if not name:
        return None
    return TypeDef(
        name,
        CATEGORY_COMMAND,
        type_refs=_referenced_names(el, "type"),
        alias=el.get("alias"),
    )


def _parse_c_int(s: str) -> int:
    s = s.strip()
    if s.startswith("0x") or s.startswith("0X"):
        return int(s, 16)
    if s.startswith("-"):
        return -int(s[1:], 16 if s[1:].startswith("0x") else 10)
    return int(s)


def _require_enum_name(el: ET.Element) -> str:
    name = el.get("name")
    if not name:
        raise RegistryError(
            "MALFORMED_ENUM",
            "Found an <enum> entry without a name attribute.",
            "Every enumerant in the registry must be named.",
        )
    return name


def _enum_int_value(el: ET.Element, extnumber: str | None) -> int | None:
    value_str = el.get("value")
    offset = el.get("offset")
    try:
        if value_str is not None:
            return _parse_c_int(value_str)
        if offset is not None:
            number = el.get("extnumber", extnumber)
            if number is None:
                return None
            int_val = ENUM_BASE_VALUE + (int(number) - 1) * ENUM_RANGE_SIZE + int(offset)
            return -int_val if el.get("dir") == "-" else int_val
    except ValueError as err:
        raise RegistryError(
            "MALFORMED_ENUM",
            f"Invalid numeric value on enumerant {el.get('name')}: {err}",
            "Use integer value, offset and extnumber attributes.",
        ) from err
    return None


def _underlying_name(
    td: TypeDef | None, el: ET.Element, type_name: str | None
) -> str:
    return el.get("extends") or type_name or (td.name if td is not None else "")


def new_enum_value_from_xml(
    td: TypeDef | None,
    el: ET.Element,
    *,
    type_name: str | None = None,
    extnumber: str | None = None,
    is_core: bool = False,
) -> EnumValue:
    """Build an EnumValue from an <enum> element.

    The owning type is the element's `extends` attribute, then type_name
    (the enclosing <enums> block), then td. Offsets are expanded with the
    element's `extnumber`, falling back to the declaring extension's number.

    Raises:
        RegistryError: MALFORMED_ENUM for a missing name or non-integer value.
    """
    name = _require_enum_name(el)
    alias = el.get("alias")
    return EnumValue(
        name,
        _underlying_name(td, el, type_name),
        value=None if alias else _enum_int_value(el, extnumber),
        is_core=is_core,
        alias=alias,
        resolved_type=td,
    )


def new_bitmask_value_from_xml(
    td: TypeDef | None,
    el: ET.Element,
    *,
    type_name: str | None = None,
    is_core: bool = False,
) -> BitmaskValue:
    name = _require_enum_name(el)
    try:
        bitpos = int(el.get("bitpos", ""))
    except ValueError as err:
        raise RegistryError(
            "MALFORMED_ENUM",
            f"Invalid bitpos on enumerant {name}: {el.get('bitpos')!r}",
            "bitpos must be a non-negative integer.",
        ) from err
    return BitmaskValue(
        name,
        _underlying_name(td, el, type_name),
        bitpos=bitpos,
        is_core=is_core,
        resolved_type=td,
    )


def new_constant_value_from_xml(el: ET.Element) -> ConstantValue:
    return ConstantValue(
        _require_enum_name(el),
        el.get("value"),
        c_type=el.get("type"),
        alias=el.get("alias"),
    )


# ===--- Registry loading ---=== #


def _supports_api(api_value: str, api: str) -> bool:
    """Return True when a comma-separated api/supported value includes api."""
    return any(token.strip() == api for token in api_value.split(","))


def _element_allowed(el: ET.Element, api: str | None) -> bool:
    api_value = el.get("api")
    return api is None or api_value is None or _supports_api(api_value, api)


def load_type_registry(root: ET.Element, api: str | None = "vulkan") -> TypeRegistry:
    """Load every type and command definition from the registry.

    Elements whose api attribute excludes api are skipped (vulkansc-only
    variants share names with their vulkan counterparts).

    Args:
        root: Registry XML root element.
        api: Target API name, or None to keep every element.

    Returns:
        Type registry keyed by type or command name.
    """
    tr: TypeRegistry = {}
    for el in root.findall("types/type"):
        if not _element_allowed(el, api):
            continue
        td = parse_type_element(el)
        if td is not None:
            tr[td.name] = td
    for el in root.findall("commands/command"):
        if not _element_allowed(el, api):
            continue
        td = parse_command_element(el)
        if td is not None:
            tr[td.name] = td
    return tr


def load_value_registry(
    root: ET.Element, tr: TypeRegistry, api: str | None = "vulkan"
) -> ValueRegistry:
    """Load every enumerant declared in an <enums> block as a core value.

    Values that <require> blocks add to existing types are not loaded here;
    read_feature_from_xml inserts them while ingesting each feature level.

    Args:
        root: Registry XML root element.
        tr: Type registry used to bind each value to its owning type.
        api: Target API name, or None to keep every element.

    Returns:
        Value registry keyed by enumerant name.
    """
    vr: ValueRegistry = {}
    for block in root.findall("enums"):
        block_name = block.get("name", "")
        if not block_name:
            continue
        td = tr.get(block_name)
        for el in block.findall("enum"):
            if not _element_allowed(el, api):
                continue
            if block_name == API_CONSTANTS_BLOCK:
                vd: ValueDef = new_constant_value_from_xml(el)
            elif el.get("bitpos"):
                vd = new_bitmask_value_from_xml(
                    td, el, type_name=block_name, is_core=True
                )
            else:
                vd = new_enum_value_from_xml(td, el, type_name=block_name, is_core=True)
            vr[vd.name] = vd
    return vr


def load_registries(
    root: ET.Element, api: str | None = "vulkan"
) -> tuple[TypeRegistry, ValueRegistry]:
    tr = load_type_registry(root, api)
    return tr, load_value_registry(root, tr, api)


# ===--- Feature ---=== #


@dataclass(frozen=True)
class ResolveStats:
    """Diagnostics from a single Feature.resolve run.

    Attributes:
        iteration_count: Passes needed to reach a fixed point.
        skipped_type_names: Required type names absent from the type registry.
        skipped_value_names: Required value names absent from the value registry.
    """

    iteration_count: int
    skipped_type_names: frozenset[str]
    skipped_value_names: frozenset[str]


class Feature:
    """A named requirement set and, once resolved, its closed definitions.

    resolved_values is keyed first by the underlying type name of each value,
    then by the value name, so emitters can write values next to their type.
    """

    def __init__(self, api_name: str = "", feature_name: str = "", version: str = ""):
        self.api_name = api_name
        self.feature_name = feature_name
        self.version = version
        self.require_type_names: set[str] = set()
        self.require_value_names: set[str] = set()
        self.resolved_types: TypeRegistry = {}
        self.resolved_values: dict[str, ValueRegistry] = {}

    @property
    def name(self) -> str:
        return self.feature_name

    def _add_resolved_value(self, vd: ValueDef) -> None:
        self.resolved_values.setdefault(vd.underlying_type_name, {})[vd.name] = vd

    def merge_include_set(self, include_set: IncludeSet) -> None:
        """Fold one definition's resolve output into this feature.

        Values are filed under their own underlying type name rather than any
        grouping implied by the bundle.
        """
        self.require_type_names |= include_set.include_types
        self.require_value_names |= include_set.include_values
        self.resolved_types.update(include_set.resolved_types)
        for vd in include_set.resolved_values.values():
            self._add_resolved_value(vd)

    def merge_with(self, other: "Feature | None") -> None:
        """Union another feature's requirement names into this one.

        Resolved maps are not copied; dependencies are merged before either
        side has been resolved.
        """
        if other is None:
            return
        self.require_type_names |= other.require_type_names
        self.require_value_names |= other.require_value_names

    def _require_core_values(self, vr: ValueRegistry) -> None:
        for name, vd in vr.items():
            if vd.is_core and vd.underlying_type_name in self.resolved_types:
                self.require_value_names.add(name)

    def resolve(self, tr: TypeRegistry, vr: ValueRegistry) -> ResolveStats:
        """Expand the requirement sets into their transitive closure in place.

        Each pass resolves the newly required types, requires every core value
        of a resolved type, then resolves and registers each newly required
        value. Passes repeat until nothing new is required. Names missing from
        the registries are skipped and reported in the returned stats.

        Args:
            tr: Full type registry.
            vr: Full value registry, including values inserted by ingestion.

        Returns:
            ResolveStats for the run.

        Raises:
            RuntimeError: If the pass count exceeds _RESOLVE_SAFETY_LIMIT.
        """
        done_types: set[str] = set()
        done_values: set[str] = set()
        skipped_types: set[str] = set()
        skipped_values: set[str] = set()
        iteration_count = 0

        while True:
            iteration_count += 1
            if iteration_count > _RESOLVE_SAFETY_LIMIT:
                raise RuntimeError(
                    f"Feature {self.feature_name!r} did not converge within "
                    f"{_RESOLVE_SAFETY_LIMIT} passes"
                )

            pending_types = sorted(self.require_type_names - done_types)
            for name in pending_types:
                done_types.add(name)
                # Bundles are transitive: a resolved type's closure is already in.
                if name in self.resolved_types:
                    continue
                td = tr.get(name)
                if td is None:
                    skipped_types.add(name)
                    continue
                self.merge_include_set(td.resolve(tr, vr))

            self._require_core_values(vr)

            pending_values = sorted(self.require_value_names - done_values)
            for name in pending_values:
                done_values.add(name)
                vd = vr.get(name)
                if vd is None:
                    skipped_values.add(name)
                    continue
                self.merge_include_set(vd.resolve(tr, vr))
                self._add_resolved_value(vd)

            if not pending_types and not pending_values:
                break

        return ResolveStats(
            iteration_count=iteration_count,
            skipped_type_names=frozenset(skipped_types),
            skipped_value_names=frozenset(skipped_values),
        )

    def filter_by_category(self) -> dict[str, "Feature"]:
        """Split the resolved closure into one feature per category.

        Types go to the bucket of their own category. Values go to the bucket
        of their resolved type's category, or CATEGORY_EXTENSION when they have
        no resolved type. Buckets keep this feature's identity.
        """
        buckets: dict[str, Feature] = {}

        def _bucket(category: str) -> Feature:
            if category not in buckets:
                buckets[category] = Feature(
                    self.api_name, self.feature_name, self.version
                )
            return buckets[category]

        for name, td in self.resolved_types.items():
            _bucket(td.category).resolved_types[name] = td
        for values in self.resolved_values.values():
            for vd in values.values():
                _bucket(vd.category)._add_resolved_value(vd)
        return buckets


# ===--- Feature declaration ingestion ---=== #


def _split_depends_tokens(depends_str: str) -> tuple[str, ...]:
    """Split a vk.xml depends expression into normalized tokens.

    Supports AND (`+`) and OR (`,`) separators, trims whitespace, and strips
    wrapper parentheses from each token fragment.
    """
    stripped = depends_str.strip()
    if not stripped:
        return ()

    tokens: list[str] = []
    for raw_token in re.split(r"[+,]", stripped):
        token = raw_token.strip().strip("() ")
        if token:
            tokens.append(token)
    return tuple(tokens)


def find_feature_node(root: ET.Element, name: str) -> ET.Element | None:
    """Find the <feature>, else <extension>, declaration named name."""
    for tag in ("feature", "extension"):
        for el in root.iter(tag):
            if el.get("name") == name:
                return el
    return None


def _declaration_name(node: ET.Element) -> str:
    name = node.get("name")
    if not name:
        raise RegistryError(
            "MALFORMED_FEATURE",
            f"<{node.tag}> declaration without a name attribute.",
            "Every feature and extension declaration must be named.",
        )
    return name


def _require_entry_name(el: ET.Element, node: ET.Element) -> str:
    name = el.get("name")
    if not name:
        raise RegistryError(
            "MALFORMED_FEATURE",
            f"<{el.tag}> requirement without a name in {node.get('name')!r}.",
            "Every required type and command must be named.",
        )
    return name


def _read_requirements(
    node: ET.Element,
    tr: TypeRegistry,
    vr: ValueRegistry,
    api: str | None,
) -> Feature:
    feature = Feature(node.get("api", ""), node.get("name", ""), node.get("number", ""))
    extnumber = node.get("number") if node.tag == "extension" else None

    for req in node.findall("require"):
        if not _element_allowed(req, api):
            continue
        # Commands share the type namespace.
        for el in req.findall("type") + req.findall("command"):
            if _element_allowed(el, api):
                feature.require_type_names.add(_require_entry_name(el, node))
        for el in req.findall("enum"):
            if not _element_allowed(el, api):
                continue
            name = _require_enum_name(el)
            extends = el.get("extends")
            if extends:
                td = tr.get(extends)
                if el.get("bitpos"):
                    vd: ValueDef = new_bitmask_value_from_xml(td, el)
                else:
                    vd = new_enum_value_from_xml(td, el, extnumber=extnumber)
                vr[vd.name] = vd
            feature.require_value_names.add(name)
    return feature


def read_feature_from_xml(
    feature_node: ET.Element | None,
    root: ET.Element | None,
    tr: TypeRegistry,
    vr: ValueRegistry,
    api: str | None = None,
) -> Feature | None:
    """Ingest one feature declaration and everything it depends on.

    Dependencies named in `depends` are located anywhere under root and
    merged by requirement name only; nothing is resolved here. Each
    declaration is read at most once per call, so circular depends terminate.
    Dependencies are read before the declarations that name them.

    This function may insert into vr: an <enum> entry with an `extends`
    attribute defines a new value (a BitmaskValue when it has `bitpos`,
    otherwise an EnumValue), which is stored under its name so a later
    Feature.resolve can find it.

    Args:
        feature_node: The <feature> or <extension> element to ingest.
        root: Document root used to look up dependencies. ElementTree has no
            parent links; when None, feature_node is searched instead.
        tr: Type registry, read to bind new values to their owning type.
        vr: Value registry, updated with newly defined values.
        api: When given, <require> blocks and their entries restricted to
            other APIs are skipped.

    Returns:
        Feature with unresolved requirement names, or None for a None node.

    Raises:
        RegistryError: MALFORMED_FEATURE or MALFORMED_ENUM on a malformed tree,
            including an unnamed <type>, <command> or <enum> requirement.
    """
    if feature_node is None:
        return None
    if root is None:
        root = feature_node

    result = Feature(
        feature_node.get("api", ""),
        _declaration_name(feature_node),
        feature_node.get("number", ""),
    )
    visited: set[str] = set()
    stack: list[tuple[ET.Element, bool]] = [(feature_node, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            result.merge_with(_read_requirements(node, tr, vr, api))
            continue

        name = _declaration_name(node)
        if name in visited:
            continue
        visited.add(name)
        stack.append((node, True))

        dep_nodes = []
        for dep_name in _split_depends_tokens(node.get("depends", "")):
            if dep_name in visited:
                continue
            dep_node = find_feature_node(root, dep_name)
            if dep_node is not None:
                dep_nodes.append(dep_node)
        stack.extend((dep_node, False) for dep_node in reversed(dep_nodes))

    return result


# ===--- Pipeline ---=== #


def load_registry_root(path: Path | None) -> ET.Element:
    validate_path_exists(path, "vk.xml", "Point vk_xml at Vulkan-Docs/xml/vk.xml.")
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as err:
        raise RegistryError(
            "INVALID_XML",
            f"Failed to parse registry {path}: {err}",
            "Check that the file is a well-formed vk.xml registry.",
        ) from err


def feature_names_up_to(
    root: ET.Element, version: VulkanVersion, api: str = "vulkan"
) -> list[str]:
    """List feature levels supporting api up to and including version.

    Args:
        root: Registry XML root element.
        version: Maximum feature number to include (inclusive).
        api: Target API name matched against each feature's api attribute.

    Returns:
        Feature names in document order.

    Raises:
        RegistryError: MALFORMED_FEATURE or INVALID_VERSION on a malformed feature.
    """
    names: list[str] = []
    for feat in root.findall("feature"):
        if not _supports_api(feat.get("api", ""), api):
            continue
        if parse_feature_version(feat.get("number")) > version:
            continue
        names.append(_declaration_name(feat))
    return names


def resolve_feature_level(
    root: ET.Element,
    feature_name: str,
    tr: TypeRegistry,
    vr: ValueRegistry,
    api: str | None = "vulkan",
) -> tuple[Feature, ResolveStats]:
    """Ingest and resolve a single feature level against shared registries.

    Raises:
        RegistryError: FEATURE_NOT_FOUND when no declaration has that name.
    """
    node = find_feature_node(root, feature_name)
    if node is None:
        raise RegistryError(
            "FEATURE_NOT_FOUND",
            f"No feature or extension named {feature_name} in the registry.",
            "Use a declared name such as VK_VERSION_1_0 or VK_KHR_surface.",
        )
    feature = read_feature_from_xml(node, root, tr, vr, api=api)
    stats = feature.resolve(tr, vr)
    return feature, stats


def resolve_feature_levels(
    root: ET.Element,
    feature_names: Sequence[str],
    api: str | None = "vulkan",
) -> dict[str, tuple[Feature, ResolveStats]]:
    """Resolve several feature levels in order against one shared registry.

    Levels run sequentially: ingesting a level may add values that later
    levels resolve by name.

    Args:
        root: Registry XML root element.
        feature_names: Feature levels to resolve, in processing order.
        api: Target API name, or None to keep every element.

    Returns:
        Mapping of feature name to (Feature, ResolveStats), in input order.
    """
    tr, vr = load_registries(root, api)
    results: dict[str, tuple[Feature, ResolveStats]] = {}
    for name in feature_names:
        results[name] = resolve_feature_level(root, name, tr, vr, api=api)
    return results


def run_resolve(config: ResolveConfig) -> dict[str, Feature]:
    print(f"Parsing: {config.vk_xml}")
    root = load_registry_root(config.vk_xml)

    names = list(config.feature_names)
    if not names and config.version is not None:
        names = feature_names_up_to(root, config.version, config.api)
    print(f"  Levels: {', '.join(names) if names else '(none)'}")

    results = resolve_feature_levels(root, names, config.api)
    for feature, stats in results.values():
        print_feature_summary(build_feature_summary(feature, stats))
    return {name: feature for name, (feature, _) in results.items()}


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class CategoryCount:
    """Resolved type and value counts for one category bucket."""

    types: int
    values: int


@dataclass(frozen=True)
class FeatureSummary:
    """Immutable data for the per-level console report.

    Attributes:
        feature_name: Resolved feature name.
        api_name: Declared api attribute of the feature.
        version: Declared number attribute of the feature.
        categories: (category, CategoryCount) pairs sorted by category name.
        skipped_types: Count of required type names missing from the registry.
        skipped_values: Count of required value names missing from the registry.
        iteration_count: Resolve passes needed to reach the fixed point.
    """

    feature_name: str
    api_name: str
    version: str
    categories: tuple[tuple[str, CategoryCount], ...]
    skipped_types: int
    skipped_values: int
    iteration_count: int


def build_feature_summary(feature: Feature, stats: ResolveStats) -> FeatureSummary:
    buckets = feature.filter_by_category()
    categories = tuple(
        (
            category,
            CategoryCount(
                types=len(bucket.resolved_types),
                values=sum(len(values) for values in bucket.resolved_values.values()),
            ),
        )
        for category, bucket in sorted(buckets.items())
    )
    return FeatureSummary(
        feature_name=feature.feature_name,
        api_name=feature.api_name,
        version=feature.version,
        categories=categories,
        skipped_types=len(stats.skipped_type_names),
        skipped_values=len(stats.skipped_value_names),
        iteration_count=stats.iteration_count,
    )


def format_feature_summary(summary: FeatureSummary) -> str:
    """Render a FeatureSummary as a console block ending in one newline."""
    lines: list[str] = []
    lines.append(f"{summary.feature_name} resolved:")
    lines.append("")
    lines.append(f"  API:        {summary.api_name or '-'}")
    lines.append(f"  Version:    {summary.version or '-'}")
    lines.append("")
    lines.append("  Categories:")

    total_types = 0
    total_values = 0
    for category, count in summary.categories:
        lines.append(
            f"    {category + ':':<13}{count.types:>6} types {count.values:>6} values"
        )
        total_types += count.types
        total_values += count.values

    lines.append("")
    lines.append(f"  Total:  {total_types:,} types, {total_values:,} values")
    lines.append(
        f"  Skipped: {summary.skipped_types} type names,"
        f" {summary.skipped_values} value names"
    )
    lines.append(f"  Passes: {summary.iteration_count}")
    lines.append("")

    return "\n".join(lines)


def print_feature_summary(summary: FeatureSummary) -> None:
    print(format_feature_summary(summary), end="")
