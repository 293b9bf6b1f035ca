"""Tests for CSV mapping, CSV imports and the persisted import job runner."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from spare.errors import ValidationError
from spare.models import Account, ImportJob
from spare.services import import_csv
from spare.services import import_jobs
from spare.services import jobs
from spare.services.import_csv import ColumnMapping, map_rows, parse_csv_amount, parse_csv_date
from spare.timeutils import utcnow

ACCOUNTS = [
    Account(id=1, user_id=1, name="Checking"),
    Account(id=2, user_id=1, name="Savings", account_type="savings"),
]
CATEGORIES = [
    {"id": 10, "name": "Food", "subcategories": [{"id": 100, "name": "Coffee"}]},
    {"id": 11, "name": "Salary", "subcategories": []},
]
MAPPING = ColumnMapping.from_mapping(
    {
        "date": "Date",
        "amount": "Amount",
        "description": "Memo",
        "account": "Account",
        "to_account": "To",
        "category": "Category",
        "subcategory": "Sub",
        "type": "Type",
    }
)


def _row(**overrides):
    row = {
        "Date": "2024-03-05",
        "Amount": "-4.50",
        "Memo": "Latte",
        "Account": "Checking",
        "To": "",
        "Category": "Food",
        "Sub": "Coffee",
        "Type": "expense",
    }
    row.update(overrides)
    return row


def _payload(account_id: int, count: int, *, day: date | None = None) -> list[dict]:
    day = day or date.today()
    return [
        {
            "occurred_on": day.isoformat(),
            "tx_type": "expense",
            "amount": 10 + index,
            "account_id": account_id,
            "description": f"Row {index}",
            "row_index": index + 1,
        }
        for index in range(count)
    ]


class TestParsing:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-03-05", date(2024, 3, 5)),
            ("03/25/2024", date(2024, 3, 25)),
            ("25/03/2024", date(2024, 3, 25)),
            ("2024/03/05", date(2024, 3, 5)),
            ("2024-03-05T10:00:00Z", date(2024, 3, 5)),
            ("yesterday", None),
            ("", None),
        ],
    )
    def test_parse_csv_date(self, raw, expected):
        assert parse_csv_date(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("$1,234.50", 1234.5), ("-42", -42.0), ("0", None), ("abc", None), ("", None)],
    )
    def test_parse_csv_amount(self, raw, expected):
        assert parse_csv_amount(raw) == expected

    def test_parse_rows_strips_bom_and_headers(self):
        headers, rows = import_csv.parse_rows("\ufeffDate , Amount\n2024-01-01,5\n".encode("utf-8"))
        assert headers == ["Date", "Amount"]
        assert rows == [{"Date": "2024-01-01", "Amount": "5"}]

    def test_empty_file_rejected(self):
        with pytest.raises(ValidationError):
            import_csv.parse_rows(b"   ")


class TestMapRows:
    def test_maps_category_subcategory_and_absolute_amount(self):
        [result] = map_rows([_row()], MAPPING, ACCOUNTS, CATEGORIES)

        assert result.error is None
        assert result.row_index == 1
        tx = result.transaction
        assert tx["amount"] == 4.5
        assert tx["account_id"] == 1
        assert tx["category_id"] == 10
        assert tx["subcategory_id"] == 100
        assert tx["occurred_on"] == "2024-03-05"

    def test_row_errors_are_one_based(self):
        results = map_rows(
            [_row(), _row(Date="not a date"), _row(Amount="n/a")], MAPPING, ACCOUNTS, CATEGORIES
        )

        assert results[0].error is None
        assert results[1].row_index == 2
        assert results[1].error == "Invalid date format: not a date"
        assert results[2].error == "Invalid amount: n/a"

    def test_unknown_account_lists_available(self):
        [result] = map_rows([_row(Account="Brokerage")], MAPPING, ACCOUNTS, CATEGORIES)
        assert result.error == 'Account not found: "Brokerage". Available accounts: Checking, Savings'

    def test_account_name_match_is_case_insensitive(self):
        [result] = map_rows([_row(Account="checking")], MAPPING, ACCOUNTS, CATEGORIES)
        assert result.transaction["account_id"] == 1

    def test_account_mapping_and_default_account(self):
        results = map_rows(
            [_row(Account="Bank CHQ"), _row(Account="")],
            MAPPING,
            ACCOUNTS,
            CATEGORIES,
            account_mapping={"Bank CHQ": 2},
            default_account_id=1,
        )
        assert [r.transaction["account_id"] for r in results] == [2, 1]

    def test_transfer_requires_destination(self):
        [result] = map_rows([_row(Type="transfer")], MAPPING, ACCOUNTS, CATEGORIES)
        assert result.error == "Transfer transaction requires a destination account (to_account)."

    def test_transfer_to_same_account_rejected(self):
        [result] = map_rows([_row(Type="transfer", To="Checking")], MAPPING, ACCOUNTS, CATEGORIES)
        assert "different source and destination" in result.error

    def test_transfer_maps_destination(self):
        [result] = map_rows([_row(Type="transfer", To="Savings")], MAPPING, ACCOUNTS, CATEGORIES)
        assert result.transaction["to_account_id"] == 2

    def test_unknown_type_falls_back_to_expense(self):
        [result] = map_rows([_row(Type="debit")], MAPPING, ACCOUNTS, CATEGORIES)
        assert result.transaction["tx_type"] == "expense"


class TestImportTransactions:
    def test_preview_with_mapping(self, ctx, user, account_factory):
        account_factory("Checking")
        content = "Date,Amount,Memo,Account\n2024-03-05,-4.50,Latte,Checking\n2024-03-06,12,Lunch,Visa\n"

        result = import_csv.preview(
            ctx,
            user_id=user.id,
            content=content,
            mapping=ColumnMapping.from_mapping(
                {"date": "Date", "amount": "Amount", "description": "Memo", "account": "Account"}
            ),
        )

        assert result["row_count"] == 2
        assert result["account_names"] == ["Checking", "Visa"]
        assert result["valid"] == 1
        assert result["invalid"] == 1

    def test_small_import_runs_immediately(self, ctx, user, account_factory):
        checking = account_factory()
        items = _payload(checking.id, 3)
        items.append({"occurred_on": "bad", "amount": 5, "account_id": checking.id, "row_index": 4})

        outcome = import_csv.import_transactions(ctx, user_id=user.id, items=items)

        assert outcome.job is None
        assert outcome.imported == 3
        assert outcome.errors == [{"row_index": 4, "error": "Invalid date: bad"}]

    def test_large_import_is_queued_and_processed(self, ctx, user, account_factory):
        checking = account_factory()

        outcome = import_csv.import_transactions(
            ctx, user_id=user.id, items=_payload(checking.id, import_csv.SYNC_IMPORT_LIMIT)
        )

        assert outcome.job is not None
        job = ctx.import_job_repo.get(outcome.job.id)
        assert job.status == "completed"
        assert job.synced_items == import_csv.SYNC_IMPORT_LIMIT
        assert job.progress == 100
        assert ctx.transaction_repo.count(user_id=user.id) == import_csv.SYNC_IMPORT_LIMIT

    def test_empty_import_rejected(self, ctx, user):
        with pytest.raises(ValidationError):
            import_csv.import_transactions(ctx, user_id=user.id, items=[])


class TestImportJobs:
    def test_retry_delay_doubles(self):
        assert import_jobs.retry_delay(1) == timedelta(seconds=60)
        assert import_jobs.retry_delay(2) == timedelta(seconds=120)
        assert import_jobs.retry_delay(3) == timedelta(seconds=240)

    def test_progress_percent(self):
        assert import_jobs.progress_percent(0, 0) == 100
        assert import_jobs.progress_percent(1, 3) == 33

    def test_failed_job_backs_off_then_gives_up(self, ctx, user, account_factory):
        checking = account_factory()
        job = import_jobs.enqueue_job(
            ctx,
            user_id=user.id,
            job_type="csv_import",
            account_id=checking.id,
            payload={"transactions": []},
            run_now=False,
        )
        start = datetime(2024, 1, 1, 12, 0, 0)

        first = import_jobs.process_pending_jobs(ctx, now=start)
        assert first["processed"] == 1
        failed = ctx.import_job_repo.get(job.id)
        assert failed.status == "failed"
        assert failed.retry_count == 1
        assert failed.next_retry_at == start + timedelta(seconds=60)

        too_early = import_jobs.process_pending_jobs(ctx, now=start + timedelta(seconds=30))
        assert too_early["processed"] == 0

        second_time = start + timedelta(seconds=61)
        import_jobs.process_pending_jobs(ctx, now=second_time)
        failed = ctx.import_job_repo.get(job.id)
        assert failed.retry_count == 2
        assert failed.next_retry_at == second_time + timedelta(seconds=120)

        third_time = second_time + timedelta(seconds=121)
        result = import_jobs.process_pending_jobs(ctx, now=third_time)
        failed = ctx.import_job_repo.get(job.id)
        assert failed.retry_count == 3
        assert failed.next_retry_at is None
        assert failed.error_message.endswith("(max retries reached)")
        assert result["results"][0]["retry_count"] == 3

        assert import_jobs.process_pending_jobs(ctx, now=third_time + timedelta(days=1))["processed"] == 0

    def test_job_listed_by_two_workers_runs_once(self, ctx, user, account_factory):
        checking = account_factory()
        job = import_jobs.enqueue_job(
            ctx,
            user_id=user.id,
            job_type="csv_import",
            account_id=checking.id,
            payload={"transactions": _payload(checking.id, 3)},
            total_items=3,
            run_now=False,
        )
        now = utcnow()
        [first_view] = ctx.import_job_repo.list_runnable(now=now, limit=5)
        [second_view] = ctx.import_job_repo.list_runnable(now=now, limit=5)

        finished = import_jobs.process_job(ctx, first_view, now=now)
        skipped = import_jobs.process_job(ctx, second_view, now=now)

        assert finished.status == "completed"
        assert skipped is None
        assert ctx.transaction_repo.count(user_id=user.id) == 3
        assert ctx.import_job_repo.get(job.id).synced_items == 3

    def test_claim_rejects_exhausted_job(self, ctx, user):
        job = ctx.import_job_repo.create(
            ImportJob(user_id=user.id, job_type="csv_import", status="failed", retry_count=3)
        )

        assert ctx.import_job_repo.claim(job.id) is None
        assert ctx.import_job_repo.get(job.id).status == "failed"

    def test_unknown_job_type_fails_without_retry(self, ctx, user):
        job = ctx.import_job_repo.create(ImportJob(user_id=user.id, job_type="mystery"))

        finished = import_jobs.process_job(ctx, job)

        assert finished.status == "failed"
        assert finished.retry_count == 0
        assert finished.next_retry_at is None

    def test_csv_job_resumes_after_processed_rows(self, ctx, user, account_factory):
        checking = account_factory()
        job = ctx.import_job_repo.create(
            ImportJob(
                user_id=user.id,
                account_id=checking.id,
                job_type="csv_import",
                payload={"transactions": _payload(checking.id, 3)},
                total_items=3,
                processed_items=2,
                synced_items=2,
            )
        )

        finished = import_jobs.process_job(ctx, job)

        assert finished.status == "completed"
        assert finished.synced_items == 3
        assert finished.processed_items == 3
        assert ctx.transaction_repo.count(user_id=user.id) == 1

    def test_row_errors_counted(self, ctx, user, account_factory):
        checking = account_factory()
        items = _payload(checking.id, 2)
        items[1]["account_id"] = 9999
        job = import_jobs.enqueue_job(
            ctx,
            user_id=user.id,
            job_type="csv_import",
            account_id=checking.id,
            payload={"transactions": items},
            total_items=2,
        )

        stored = import_jobs.get_job(ctx, job.id, user_id=user.id)

        assert stored["status"] == "completed"
        assert stored["synced_items"] == 1
        assert stored["error_items"] == 1
        assert "payload" not in stored
        assert jobs.get_progress(job.id)["status"] == "completed"
