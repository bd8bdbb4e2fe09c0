"""Command-line entry points for gudang-recon.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and rendering the results. Keeping the CLI thin ensures the same
parser configuration can be reused by tests, scripts, or any alternative
front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import correction, ledger, log, record_store, runtime, subjects, workflow
from .constants import ReconciliationStatus, SubjectKind
from .exceptions import ReconciliationError, ValidationError
from .runtime import RuntimeContext
from .subjects import SubjectRef


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gudang-cli",
        description="Stock opname and debt reconciliation on the warehouse workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the current directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as submissions and approvals."""
    specs = {
        "add-stock": register_add_stock_command(subparsers),
        "add-debt": register_add_debt_command(subparsers),
        "add-cash": register_add_cash_command(subparsers),
        "pay-installment": register_pay_installment_command(subparsers),
        "delete-installment": register_delete_installment_command(subparsers),
        "submit-count": register_submit_count_command(subparsers),
        "submit-debt": register_submit_debt_command(subparsers),
        "approve": register_decision_command(subparsers, "approve", "Approve a pending record and apply it.", run_approve),
        "reject": register_decision_command(subparsers, "reject", "Reject a pending record (a note is required).", run_reject),
        "withdraw": register_decision_command(subparsers, "withdraw", "Delete a record that is still pending.", run_withdraw),
        "reconcile-debt": register_reconcile_debt_command(subparsers),
        "reconcile-stock": register_reconcile_stock_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands."""
    specs = {
        "list-records": register_list_records_command(subparsers),
        "show-debt": register_show_debt_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_actor_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--actor", default=None, help="Who performs the action (defaults to [Defaults] DefaultActor).")


def register_add_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-stock``."""
    name = "add-stock"
    help_text = "Register a product at a branch with its opening quantity."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--branch-id", required=True)
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--unit", default="kg")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_stock)


def register_add_debt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-debt``."""
    name = "add-debt"
    help_text = "Register a new unpaid debt."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--debt-id", required=True)
        parser.add_argument("--party", required=True)
        parser.add_argument("--total", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_debt)


def register_add_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-cash``."""
    name = "add-cash"
    help_text = "Register a cash account with its opening balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.add_argument("--account-name", required=True)
        parser.add_argument("--balance", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_cash)


def register_pay_installment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay-installment``."""
    name = "pay-installment"
    help_text = "Pay part or all of a debt from a cash account."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--debt-id", required=True)
        parser.add_argument("--cash-account-id", required=True)
        amount_group = parser.add_mutually_exclusive_group(required=True)
        amount_group.add_argument("--amount")
        amount_group.add_argument("--settle", action="store_true", help="Pay the whole remaining balance.")
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay_installment)


def register_delete_installment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-installment``."""
    name = "delete-installment"
    help_text = "Cancel an installment and recalculate its debt."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--installment-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_installment)


def register_submit_count_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``submit-count``."""
    name = "submit-count"
    help_text = "Submit a physical stock count for approval."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--branch-id", required=True)
        parser.add_argument("--observed", required=True, help="Physically counted quantity.")
        parser.add_argument("--note", default=None)
        _add_actor_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_submit_count)


def register_submit_debt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``submit-debt``."""
    name = "submit-debt"
    help_text = "Submit a corrected paid amount for a debt for approval."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--debt-id", required=True)
        parser.add_argument(
            "--observed",
            default=None,
            help="Corrected paid amount (defaults to the sum of the debt's installments).",
        )
        parser.add_argument("--note", default=None)
        _add_actor_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_submit_debt)


def register_decision_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
    help_text: str,
    execute: Callable[[RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    """Register a command acting on a single record (approve/reject/withdraw)."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.add_argument("--note", default=None)
        _add_actor_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_reconcile_debt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reconcile-debt``."""
    name = "reconcile-debt"
    help_text = "Recalculate a debt's paid amount from its installments."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--debt-id", required=True)
        _add_actor_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_reconcile_debt)


def register_reconcile_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reconcile-stock``."""
    name = "reconcile-stock"
    help_text = "Rebuild a stock quantity from its movement history."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--branch-id", required=True)
        _add_actor_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_reconcile_stock)


def register_list_records_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``list-records``."""
    name = "list-records"
    help_text = "List reconciliation records, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--status", choices=[member.value for member in ReconciliationStatus], default=None)
        parser.add_argument("--kind", choices=[member.value for member in SubjectKind], default=None)
        parser.add_argument("--from", dest="date_from", default=None, help="Earliest creation date (YYYY-MM-DD).")
        parser.add_argument("--to", dest="date_to", default=None, help="Latest creation date (YYYY-MM-DD).")
        parser.add_argument("--search", default=None)
        parser.add_argument("--page", type=int, default=1)
        parser.add_argument("--page-size", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_list_records)


def register_show_debt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``show-debt``."""
    name = "show-debt"
    help_text = "Display a debt and its installment history."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--debt-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_show_debt)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return runtime.load_runtime_context(config_path)


def dispatch_command(
    context: RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def parse_decimal(raw: str, *, field: str) -> Decimal:
    """Parse a user-supplied number, reporting bad input as a validation error."""
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise ValidationError(f"{field} must be a number, got '{raw}'") from exc
    if not value.is_finite():
        raise ValidationError(f"{field} must be a finite number, got '{raw}'")
    return value


def parse_date(raw: Optional[str], *, field: str) -> Optional[date]:
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format, got '{raw}'") from exc


def resolve_actor(context: RuntimeContext, args: argparse.Namespace) -> str:
    return getattr(args, "actor", None) or context.settings.default_actor


def translate_submit_count(context: RuntimeContext, args: argparse.Namespace) -> workflow.SubmitCommand:
    """Translate CLI args into a stock count submission."""
    return workflow.SubmitCommand(
        subject=SubjectRef.stock(args.product_id, args.branch_id),
        observed_value=parse_decimal(args.observed, field="Observed quantity"),
        note=args.note,
        actor=resolve_actor(context, args),
    )


def translate_submit_debt(context: RuntimeContext, args: argparse.Namespace) -> workflow.SubmitCommand:
    """Translate CLI args into a debt correction submission.

    Without ``--observed`` the corrected paid amount is the installment
    ledger sum, which is the usual reason to file a debt correction.
    """
    subject = SubjectRef.debt(args.debt_id)
    if args.observed is None:
        observed = correction.ledger_total(context, subject)
    else:
        observed = parse_decimal(args.observed, field="Observed amount")
    return workflow.SubmitCommand(
        subject=subject,
        observed_value=observed,
        note=args.note,
        actor=resolve_actor(context, args),
    )


def translate_decision(context: RuntimeContext, args: argparse.Namespace) -> workflow.DecisionCommand:
    """Translate CLI args into a decision on one record."""
    return workflow.DecisionCommand(
        record_id=args.record_id,
        note=args.note,
        actor=resolve_actor(context, args),
    )


def translate_pay_installment(args: argparse.Namespace) -> ledger.InstallmentCommand:
    """Translate CLI args into an installment command object."""
    return ledger.InstallmentCommand(
        debt_id=args.debt_id,
        cash_account_id=args.cash_account_id,
        amount=None if args.settle else parse_decimal(args.amount, field="Amount"),
        settle=args.settle,
        notes=args.notes,
    )


def translate_record_filter(args: argparse.Namespace) -> record_store.RecordFilter:
    """Translate CLI args into a listing filter."""
    start = parse_date(args.date_from, field="--from")
    end = parse_date(args.date_to, field="--to")
    return record_store.RecordFilter(
        status=ReconciliationStatus(args.status) if args.status else None,
        subject_kind=SubjectKind(args.kind) if args.kind else None,
        date_range=record_store.DateRange(start, end) if (start or end) else None,
        search=args.search,
    )


def render_outcome(outcome: workflow.WorkflowOutcome) -> int:
    """Print an orchestrator outcome and map it to an exit code."""
    print(outcome.message)
    if outcome.record is not None:
        print(format_record(outcome.record))
    return 0 if outcome.ok else 2


def format_record(record: record_store.ReconciliationRecord) -> str:
    return (
        f"{record.record_id} | {record.subject} | system={record.authoritative_value} "
        f"observed={record.observed_value} variance={record.variance:+} | {record.status.value}"
        + (f" | {record.note}" if record.note else "")
    )


def run_add_stock(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-stock workflow."""
    row = subjects.add_stock_item(
        context,
        product_id=args.product_id,
        branch_id=args.branch_id,
        product_name=args.product_name,
        quantity=parse_decimal(args.quantity, field="Quantity"),
        unit=args.unit,
    )
    print(f"Registered {row.product_name} at {row.branch_id}: {row.quantity} {row.unit}")
    return 0


def run_add_debt(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-debt workflow."""
    row = ledger.add_debt(
        context,
        debt_id=args.debt_id,
        party=args.party,
        total_amount=parse_decimal(args.total, field="Total"),
    )
    print(f"Registered debt {row.debt_id} to {row.party}: {row.total_amount}")
    return 0


def run_add_cash(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-cash workflow."""
    row = ledger.add_cash_account(
        context,
        account_id=args.account_id,
        account_name=args.account_name,
        balance=parse_decimal(args.balance, field="Balance"),
    )
    print(f"Registered cash account {row.account_id} ({row.account_name}): {row.balance}")
    return 0


def run_pay_installment(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the installment workflow."""
    installment = ledger.record_installment(context, translate_pay_installment(args))
    debt = ledger.get_debt(context, installment.debt_id)
    print(f"Installment {installment.installment_id} recorded: {installment.amount}")
    print(f"Debt {debt.debt_id}: paid={debt.paid_amount} remaining={debt.remaining_amount} ({debt.status})")
    return 0


def run_delete_installment(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the installment cancellation workflow."""
    result = ledger.delete_installment(context, args.installment_id)
    print(f"Installment {args.installment_id} deleted; {result.subject} paid amount is now {result.after}")
    return 0


def run_submit_count(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Submit a stock count through the orchestrator."""
    return render_outcome(workflow.submit(context, translate_submit_count(context, args)))


def run_submit_debt(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Submit a debt correction through the orchestrator."""
    return render_outcome(workflow.submit(context, translate_submit_debt(context, args)))


def run_approve(context: RuntimeContext, args: argparse.Namespace) -> int:
    return render_outcome(workflow.approve(context, translate_decision(context, args)))


def run_reject(context: RuntimeContext, args: argparse.Namespace) -> int:
    return render_outcome(workflow.reject(context, translate_decision(context, args)))


def run_withdraw(context: RuntimeContext, args: argparse.Namespace) -> int:
    return render_outcome(workflow.withdraw(context, translate_decision(context, args)))


def run_reconcile_debt(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Heal a debt's denormalized columns from its installments."""
    return render_outcome(
        workflow.reconcile(context, SubjectRef.debt(args.debt_id), actor=resolve_actor(context, args))
    )


def run_reconcile_stock(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Heal a stock quantity from its movement history."""
    return render_outcome(
        workflow.reconcile(
            context,
            SubjectRef.stock(args.product_id, args.branch_id),
            actor=resolve_actor(context, args),
        )
    )


def run_list_records(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Print one page of reconciliation records."""
    page = record_store.list_by_filter(
        context,
        translate_record_filter(args),
        page=args.page,
        page_size=args.page_size,
    )
    for record in page.items:
        print(format_record(record))
    print(f"Page {page.page} of {max(page.total_pages, 1)} ({page.total_records} records)")
    return 0


def run_show_debt(context: RuntimeContext, args: argparse.Namespace) -> int:
    """Print a debt summary followed by its installments."""
    debt = ledger.get_debt(context, args.debt_id)
    print(f"{debt.debt_id} | {debt.party} | total={debt.total_amount} paid={debt.paid_amount} "
          f"remaining={debt.remaining_amount} | {debt.status}")
    for installment in ledger.list_installments(context, debt.debt_id):
        print(f"  {installment.installment_id} | {installment.paid_on_iso} | {installment.amount} "
              f"| {installment.cash_account_id} | {installment.notes or ''}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, ReconciliationError):
        log.error("%s", error)
        print(error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        runtime.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        runtime.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
