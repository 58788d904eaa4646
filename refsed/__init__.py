from refsed.common import (
    VERSION,
    RefsedError,
    RefsedExpectedError,
    initialize_logging,
)
from refsed.condition_parser import (
    Condition,
    ConditionSyntaxError,
    InvalidConditionError,
    Operator,
)
from refsed.config import Config, ConfigDecodeError, InvalidConfigValueError
from refsed.evaluator import Evaluation, evaluate
from refsed.fields import (
    CollectionField,
    CreatorField,
    FieldRef,
    ItemTypeField,
    ScalarField,
    TagsField,
    UnknownField,
    parse_field,
)
from refsed.library import (
    Library,
    LibraryError,
    LibraryImportError,
    LibraryRecord,
    export_records,
    import_records,
)
from refsed.matcher import (
    InvalidPatternError,
    MatchOutcome,
    PatternType,
    is_empty_check,
    validate_pattern,
)
from refsed.planner import PrefilterPlan, extract_literal, plan
from refsed.records import (
    Creator,
    InvalidFieldError,
    Record,
    RecordStore,
)
from refsed.replace import (
    BatchError,
    BatchResult,
    CommitResult,
    FieldChange,
    ReplaceProgress,
    ReplaceResult,
    apply_replace,
    commit,
    preview_fields,
    process_batch,
)
from refsed.replacement import CompiledReplacer, ReplacementSpec, compile_replacement
from refsed.resolver import MatchDetail, match_field
from refsed.runner import execute_replace, execute_search
from refsed.search import (
    FilterProgress,
    RefineProgress,
    SearchError,
    SearchResult,
    search_records,
)

__all__ = [
    # Plumbing
    "initialize_logging",
    "VERSION",
    # Errors
    "RefsedError",
    "RefsedExpectedError",
    "ConditionSyntaxError",
    "InvalidConditionError",
    "ConfigDecodeError",
    "InvalidConfigValueError",
    "InvalidFieldError",
    "InvalidPatternError",
    "LibraryError",
    "LibraryImportError",
    "SearchError",
    # Configuration
    "Config",
    # Conditions
    "Condition",
    "Operator",
    "PatternType",
    "FieldRef",
    "ScalarField",
    "CreatorField",
    "TagsField",
    "ItemTypeField",
    "CollectionField",
    "UnknownField",
    "parse_field",
    # Records
    "Creator",
    "Record",
    "RecordStore",
    "Library",
    "LibraryRecord",
    "import_records",
    "export_records",
    # Search
    "MatchOutcome",
    "MatchDetail",
    "Evaluation",
    "PrefilterPlan",
    "SearchResult",
    "FilterProgress",
    "RefineProgress",
    "is_empty_check",
    "validate_pattern",
    "match_field",
    "evaluate",
    "extract_literal",
    "plan",
    "search_records",
    "execute_search",
    # Replace
    "CompiledReplacer",
    "ReplacementSpec",
    "ReplaceResult",
    "FieldChange",
    "CommitResult",
    "BatchError",
    "BatchResult",
    "ReplaceProgress",
    "compile_replacement",
    "apply_replace",
    "preview_fields",
    "commit",
    "process_batch",
    "execute_replace",
]

initialize_logging(__name__)
