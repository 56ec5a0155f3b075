"""
Pipeline orchestrator: ``generate(options) -> GenerationResult``.

Phases:

1. Read: the schema reader is opened once, the table set is listed and every
   table is read in stable name order on the calling thread.
2. Assemble: the metadata assembler builds finalized descriptors for the
   whole set (collect-all, then link-all).
3. Emit: rendering and writing run on a bounded thread pool, one task per
   table. Workers put their outcomes on a queue; the calling thread is the
   only consumer and the only writer of the result.

A CancellationToken is checked before every table read and every artifact
write. Files written before cancellation stay on disk and the result keeps
the completed subset.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from schema_codegen.codegen import ArtifactPlan, CodeEmitter, RenderOptions, load_template_set
from schema_codegen.colored_logging import log_highlight, log_progress, log_section, log_success
from schema_codegen.constants import DefaultConfig
from schema_codegen.domain.models import (
    ArtifactKind,
    ArtifactRecord,
    ConflictPolicy,
    Diagnostic,
    GenerationResult,
    TableDescriptor,
    TableStatus,
    WriteStatus,
)
from schema_codegen.domain.type_mapping import TypeMapper
from schema_codegen.exceptions import ConfigurationError, GenerationCancelled, SchemaReadError, TemplateError
from schema_codegen.file_sink import FileSink
from schema_codegen.introspection_django import DjangoSchemaReader, SchemaReader, setup_django
from schema_codegen.mapper import MetadataAssembler, error_diagnostic, read_raw_table

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"

_KIND_ORDER = {ArtifactKind.ENTITY: 0, ArtifactKind.REPOSITORY: 1, ArtifactKind.ENUM: 2}


@dataclass(frozen=True)
class GenerationOptions:
    """
    Inputs of one generation run.

    ``databases`` is a Django ``DATABASES`` mapping. It is only used when no
    reader is passed to ``generate`` and Django is not configured yet.
    """

    databases: Optional[Mapping[str, Any]] = None
    db_alias: str = "default"
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    namespace: str = DefaultConfig.NAMESPACE
    output_root: Union[str, Path] = DefaultConfig.OUTPUT_DIR
    conflict_policy: ConflictPolicy = ConflictPolicy(DefaultConfig.CONFLICT_POLICY)
    generate_repository: bool = DefaultConfig.GENERATE_REPOSITORY
    emit_enums: bool = DefaultConfig.EMIT_ENUMS
    template_set: Union[str, Path] = DefaultConfig.TEMPLATE_SET
    workers: int = DefaultConfig.WORKERS
    timeout: Optional[float] = None
    singularize_entity_names: bool = DefaultConfig.SINGULARIZE_ENTITY_NAMES
    type_mapper: Optional[TypeMapper] = field(default=None, compare=False)
    secret_key: str = "schema-codegen-introspection"

    def __post_init__(self):
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        object.__setattr__(self, "conflict_policy", ConflictPolicy(self.conflict_policy))
        object.__setattr__(self, "include", tuple(self.include or ()))
        object.__setattr__(self, "exclude", tuple(self.exclude or ()))

    @property
    def render_options(self) -> RenderOptions:
        return RenderOptions(
            namespace=self.namespace,
            generate_repository=self.generate_repository,
            emit_enums=self.emit_enums,
        )


class CancellationToken:
    """
    Cooperative cancellation shared by the orchestrator and its workers.

    Fires on an explicit ``cancel()`` or once the optional deadline passes.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline: Optional[float] = None
        self.reason: Optional[str] = None
        if timeout is not None:
            self.set_timeout(timeout)

    def set_timeout(self, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        if self._deadline is None or deadline < self._deadline:
            self._deadline = deadline

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("timeout")
        return self._event.is_set()

    def check(self) -> None:
        """
        Raises:
            GenerationCancelled: the token has fired.
        """
        if self.cancelled:
            raise GenerationCancelled(reason=self.reason)


@dataclass(frozen=True)
class _Outcome:
    """Message a worker puts on the outcome queue."""

    table_name: str
    record: Optional[ArtifactRecord] = None
    diagnostic: Optional[Diagnostic] = None
    finished: bool = False
    cancelled: bool = False


class _RunCollector:
    """Everything the aggregator learns during a run. Owned by the calling thread."""

    def __init__(self):
        self.artifacts: List[ArtifactRecord] = []
        self.diagnostics: List[Diagnostic] = []
        self.tables: Dict[str, TableStatus] = {}
        self.cancelled = False

    def fail_table(self, table_name: str, reason: str) -> None:
        self.tables[table_name] = TableStatus(table_name, succeeded=False, reason=reason)

    def result(self) -> GenerationResult:
        artifacts = sorted(
            self.artifacts,
            key=lambda record: (record.table_name, _KIND_ORDER[record.kind], record.logical_name),
        )
        diagnostics = sorted(
            self.diagnostics,
            key=lambda d: (d.table_name or "", d.severity.value, d.code, d.artifact or "", d.message),
        )
        return GenerationResult(
            artifacts=tuple(artifacts),
            tables=tuple(self.tables[name] for name in sorted(self.tables)),
            diagnostics=tuple(diagnostics),
            cancelled=self.cancelled,
        )


def generate(
    options: GenerationOptions,
    reader: Optional[SchemaReader] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> GenerationResult:
    """
    Run the whole pipeline for ``options``.

    Args:
        options: Run inputs.
        reader: Schema reader to use. Defaults to a DjangoSchemaReader on
            ``options.db_alias``, configuring Django from
            ``options.databases`` first when needed.
        cancel_token: Token the caller may fire from another thread.
            ``options.timeout`` is applied to it as a deadline.

    Raises:
        DatabaseConnectionError: the database could not be reached. No table
            is processed.
        ConfigurationError: the template set or the options are invalid.
    """
    token = cancel_token or CancellationToken()
    if options.timeout is not None:
        token.set_timeout(options.timeout)

    template_set = load_template_set(options.template_set)
    normalizer = template_set.make_normalizer(options.singularize_entity_names)

    if reader is None:
        if options.databases:
            setup_django(dict(options.databases), options.secret_key)
        reader = DjangoSchemaReader(options.db_alias)

    collector = _RunCollector()

    log_section(logger, "Schema introspection")
    reader.open()
    try:
        table_names = reader.list_tables(list(options.include), list(options.exclude))
        log_highlight(logger, f"Found {len(table_names)} tables to generate")
        raw_tables, read_failures = _read_tables(reader, sorted(table_names), token, collector)
    finally:
        reader.close()

    if collector.cancelled:
        logger.warning(f"Generation cancelled during schema reads ({token.reason})")
        return collector.result()

    log_section(logger, "Metadata assembly")
    log_progress(logger, f"Mapping {len(raw_tables)} tables to descriptors...")
    assembler = MetadataAssembler(
        reader.dialect,
        normalizer,
        type_mapper=options.type_mapper,
        emit_enums=options.emit_enums,
        generate_repository=options.generate_repository,
    )
    assembly = assembler.assemble(table_names, raw_tables, read_failures)
    collector.diagnostics.extend(assembly.diagnostics)
    for name, reason in assembly.failures.items():
        collector.fail_table(name, reason)

    log_section(logger, "Code generation")
    emitter = CodeEmitter(template_set)
    sink = FileSink(options.output_root, options.conflict_policy)
    _emit_tables(assembly.ordered_tables(), emitter, sink, options, token, collector)

    result = collector.result()
    if result.cancelled:
        logger.warning(f"Generation cancelled ({token.reason}); {len(result.artifacts)} artifacts were processed")
    else:
        log_success(
            logger,
            f"Generation finished with status '{result.status.value}': "
            f"{len(result.artifacts)} artifacts, {len(result.diagnostics)} diagnostics",
        )
    return result


def _read_tables(
    reader: SchemaReader,
    table_names: List[str],
    token: CancellationToken,
    collector: _RunCollector,
):
    raw_tables = {}
    read_failures = {}
    for name in table_names:
        try:
            token.check()
        except GenerationCancelled:
            collector.cancelled = True
            break
        log_progress(logger, f"Introspecting table '{name}'...")
        try:
            raw_tables[name] = read_raw_table(reader, name)
        except SchemaReadError as e:
            logger.error(f"Excluding table '{name}': {e.message}")
            read_failures[name] = e.message
            collector.diagnostics.append(error_diagnostic(name, e))
    return raw_tables, read_failures


def _emit_tables(
    tables: List[TableDescriptor],
    emitter: CodeEmitter,
    sink: FileSink,
    options: GenerationOptions,
    token: CancellationToken,
    collector: _RunCollector,
) -> None:
    if not tables:
        return

    outcomes: "queue.Queue[_Outcome]" = queue.Queue()
    render_options = options.render_options
    workers = min(options.workers, len(tables))

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="schema-codegen") as executor:
        futures = [
            executor.submit(_emit_table, table, emitter, sink, render_options, token, outcomes)
            for table in tables
        ]

        pending = {table.name for table in tables}
        cancelled_tables = set()
        try:
            while pending:
                outcome = outcomes.get()
                if outcome.record is not None:
                    collector.artifacts.append(outcome.record)
                if outcome.diagnostic is not None:
                    collector.diagnostics.append(outcome.diagnostic)
                if outcome.cancelled:
                    cancelled_tables.add(outcome.table_name)
                if outcome.finished:
                    pending.discard(outcome.table_name)
        except BaseException:
            # Running workers stop at their next artifact; queued tables never start
            token.cancel("interrupted")
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        # Surface unexpected worker failures instead of swallowing them
        for future in futures:
            future.result()

    for table in tables:
        if table.name in cancelled_tables:
            collector.cancelled = True
            collector.fail_table(table.name, CANCELLED)
        else:
            collector.tables[table.name] = TableStatus(table.name, succeeded=True)


def _emit_table(
    table: TableDescriptor,
    emitter: CodeEmitter,
    sink: FileSink,
    options: RenderOptions,
    token: CancellationToken,
    outcomes: "queue.Queue[_Outcome]",
) -> None:
    """Render and write every artifact of one table. Runs on a worker thread."""
    try:
        for plan in emitter.plan(table, options):
            if token.cancelled:
                outcomes.put(_Outcome(table.name, cancelled=True))
                return
            outcomes.put(_emit_artifact(plan, emitter, sink, options))
    finally:
        outcomes.put(_Outcome(table.name, finished=True))


def _emit_artifact(plan: ArtifactPlan, emitter: CodeEmitter, sink: FileSink, options: RenderOptions) -> _Outcome:
    table_name = plan.table.name
    try:
        artifact = emitter.render_artifact(plan, options)
    except TemplateError as e:
        logger.error(e.message)
        record = ArtifactRecord(
            kind=plan.kind,
            logical_name=plan.logical_name,
            path=str(sink.output_root / emitter.template_set.relative_path(plan.kind, plan.logical_name)),
            status=WriteStatus.ERROR,
            table_name=table_name,
        )
        return _Outcome(table_name, record=record, diagnostic=error_diagnostic(table_name, e, plan.logical_name))

    outcome = sink.write(artifact)
    record = ArtifactRecord(
        kind=artifact.kind,
        logical_name=artifact.logical_name,
        path=str(outcome.path),
        status=outcome.status,
        table_name=table_name,
        content=artifact.content,
    )
    diagnostic = None
    if outcome.error is not None:
        diagnostic = error_diagnostic(table_name, outcome.error, artifact.logical_name)
    return _Outcome(table_name, record=record, diagnostic=diagnostic)
