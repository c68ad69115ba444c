from __future__ import annotations

import asyncio
import threading
import time

from sqlalchemy.exc import OperationalError

from applytrack.core.ingestion import IngestionPipeline
from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal
from applytrack.errors import GatewayError
from applytrack.types import JobDescription

CSV_HEADER = "companyName,jobTitle,location,jobUrl,type,category,userId\n"


def _add_users(count: int) -> list[str]:
    with SessionLocal() as db:
        repo = Repository(db)
        return [
            repo.create_user(first_name=f"User{n}", last_name="", emails=[f"user{n}@example.com"]).id
            for n in range(count)
        ]


def _applications() -> list:
    with SessionLocal() as db:
        return Repository(db).list_applications()


def test_gateway_failure_on_one_url_does_not_stop_the_others(fake_gateway) -> None:
    _add_users(1)
    urls = [f"https://jobs.example.com/{n}" for n in range(5)]
    fake_gateway.descriptions[urls[2]] = GatewayError("model returned malformed output")
    pipeline = IngestionPipeline(SessionLocal, fake_gateway, max_concurrency=2)

    summary = asyncio.run(pipeline.bulk_add_from_urls(urls))

    assert summary.total == 5
    assert summary.dispatched == 5
    assert summary.succeeded == 4
    assert summary.failed == 1
    assert summary.failures[0].index == 2
    assert summary.failures[0].stage == "gateway"
    assert summary.failures[0].identifier == urls[2]
    assert sorted(row.job_url for row in _applications()) == sorted(urls[:2] + urls[3:])


def test_all_users_creates_one_record_per_user(services) -> None:
    user_ids = _add_users(3)
    content = CSV_HEADER + "Acme,Engineer,Remote,https://acme.com/1,Full-Time,SWE,\n"

    summary = services.pipeline.bulk_add_from_csv(content)

    assert summary.succeeded == 1
    assert summary.created == 3
    rows = _applications()
    assert sorted(row.user_id for row in rows) == sorted(user_ids)
    assert len({(row.company_name, row.job_title, row.location, row.job_url, row.status) for row in rows}) == 1


def test_same_url_twice_creates_two_records(fake_gateway) -> None:
    _add_users(1)
    pipeline = IngestionPipeline(SessionLocal, fake_gateway)

    summary = asyncio.run(pipeline.bulk_add_from_urls(["https://acme.com/1", "https://acme.com/1"]))

    assert summary.succeeded == 2
    assert len(_applications()) == 2
    assert fake_gateway.fetched == ["https://acme.com/1", "https://acme.com/1"]


def test_unknown_user_fails_only_that_row(services) -> None:
    (user_id,) = _add_users(1)
    content = (
        CSV_HEADER
        + f"Acme,Engineer,Remote,https://acme.com/1,Full-Time,SWE,{user_id}\n"
        + "Beta,Engineer,Remote,https://beta.com/1,Full-Time,SWE,ghost\n"
    )

    summary = services.pipeline.bulk_add_from_csv(content)

    assert summary.succeeded == 1
    assert [(failure.index, failure.stage) for failure in summary.failures] == [(1, "resolution")]
    assert "ghost not found" in summary.failures[0].reason


def test_invalid_rows_are_reported_in_input_order(services) -> None:
    _add_users(1)
    content = (
        CSV_HEADER
        + "Acme,Engineer,Remote,not-a-url,Full-Time,SWE,\n"
        + "Beta,Engineer,Remote,https://beta.com/1,Full-Time,SWE,\n"
        + ",,Remote,https://gamma.com/1,Gig,SWE,\n"
    )

    summary = services.pipeline.bulk_add_from_csv(content)

    assert summary.total == 3
    assert summary.dispatched == 1
    assert summary.succeeded == 1
    assert [failure.index for failure in summary.failures] == [0, 2]
    assert summary.failures[0].fields == ["jobUrl"]
    assert set(summary.failures[1].fields) == {"companyName", "jobTitle", "type"}
    assert all(failure.stage == "validation" for failure in summary.failures)


def test_store_failure_is_isolated_to_its_row(services, monkeypatch) -> None:
    _add_users(1)
    original = Repository.create_applications

    def flaky_create(self, intents):
        intents = list(intents)
        if intents[0].company_name == "Boom":
            raise OperationalError("INSERT INTO applications", {}, Exception("disk I/O error"))
        return original(self, intents)

    monkeypatch.setattr(Repository, "create_applications", flaky_create)
    content = (
        CSV_HEADER
        + "Acme,Engineer,Remote,https://acme.com/1,Full-Time,SWE,\n"
        + "Boom,Engineer,Remote,https://boom.com/1,Full-Time,SWE,\n"
        + "Zeta,Engineer,Remote,https://zeta.com/1,Full-Time,SWE,\n"
    )

    summary = services.pipeline.bulk_add_from_csv(content)

    assert summary.succeeded == 2
    assert summary.failures[0].stage == "persistence"
    assert summary.failures[0].reason == "disk I/O error"
    assert sorted(row.company_name for row in _applications()) == ["Acme", "Zeta"]


def test_slow_gateway_call_times_out_as_a_row_failure() -> None:
    _add_users(1)

    class SlowGateway:
        def fetch_job_description(self, url: str) -> JobDescription:
            if url.endswith("/slow"):
                time.sleep(0.5)
            return JobDescription(company_name="Acme", job_title="Engineer", location="Remote")

    pipeline = IngestionPipeline(SessionLocal, SlowGateway(), gateway_timeout_sec=0.1)
    summary = asyncio.run(pipeline.bulk_add_from_urls(["https://acme.com/slow", "https://acme.com/fast"]))

    assert summary.succeeded == 1
    assert summary.failures[0].index == 0
    assert summary.failures[0].stage == "gateway"
    assert "timed out" in summary.failures[0].reason


def test_gateway_fan_out_respects_concurrency_limit() -> None:
    _add_users(1)

    class CountingGateway:
        def __init__(self) -> None:
            self.lock = threading.Lock()
            self.active = 0
            self.peak = 0

        def fetch_job_description(self, url: str) -> JobDescription:
            with self.lock:
                self.active += 1
                self.peak = max(self.peak, self.active)
            time.sleep(0.05)
            with self.lock:
                self.active -= 1
            return JobDescription(company_name="Acme", job_title="Engineer", location="Remote")

    gateway = CountingGateway()
    pipeline = IngestionPipeline(SessionLocal, gateway, max_concurrency=2)
    summary = asyncio.run(pipeline.bulk_add_from_urls([f"https://acme.com/{n}" for n in range(6)]))

    assert summary.succeeded == 6
    assert 1 <= gateway.peak <= 2


def test_timed_out_gateway_calls_keep_their_slot() -> None:
    _add_users(1)

    class SlowGateway:
        def __init__(self) -> None:
            self.lock = threading.Lock()
            self.active = 0
            self.peak = 0

        def fetch_job_description(self, url: str) -> JobDescription:
            with self.lock:
                self.active += 1
                self.peak = max(self.peak, self.active)
            time.sleep(0.3)
            with self.lock:
                self.active -= 1
            return JobDescription(company_name="Acme", job_title="Engineer", location="Remote")

    gateway = SlowGateway()
    pipeline = IngestionPipeline(SessionLocal, gateway, max_concurrency=1, gateway_timeout_sec=0.05)
    summary = asyncio.run(pipeline.bulk_add_from_urls([f"https://acme.com/{n}" for n in range(3)]))

    assert summary.failed == 3
    assert all(failure.stage == "gateway" and "timed out" in failure.reason for failure in summary.failures)
    assert gateway.peak == 1
    assert gateway.active == 0


def test_url_batch_persists_off_the_event_loop_thread(fake_gateway, monkeypatch) -> None:
    _add_users(1)
    persisted_on: list[int] = []
    original = Repository.create_applications

    def recording_create(self, intents):
        persisted_on.append(threading.get_ident())
        return original(self, intents)

    monkeypatch.setattr(Repository, "create_applications", recording_create)
    pipeline = IngestionPipeline(SessionLocal, fake_gateway)
    summary = asyncio.run(pipeline.bulk_add_from_urls(["https://acme.com/1", "https://acme.com/2"]))

    assert summary.succeeded == 2
    assert len(persisted_on) == 2
    assert threading.get_ident() not in persisted_on


def test_url_batch_without_users_fails_each_row_at_resolution(fake_gateway) -> None:
    pipeline = IngestionPipeline(SessionLocal, fake_gateway)

    summary = asyncio.run(pipeline.bulk_add_from_urls(["https://acme.com/1", "   "]))

    assert summary.total == 2
    assert summary.dispatched == 1
    assert [(failure.index, failure.stage) for failure in summary.failures] == [(0, "resolution"), (1, "validation")]
