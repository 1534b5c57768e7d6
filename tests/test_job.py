import asyncio

import pytest

from fake_server import connect, status
from flense import SubscriptionCallbacks


def test_job_handle_does_not_touch_network_until_triggered(server):
    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf").with_ocr()
            await asyncio.sleep(0)
            assert server.creation_calls == 0
            assert job.job_id is None
            assert not job.triggered
            created = await job
            assert job.job_id == created.job_id == "job-1"

    asyncio.run(scenario())


def test_concurrent_triggers_create_exactly_one_job(server):
    server.statuses["job-1"] = [status("job-1", "active"), status("job-1", "completed", output={"markdown": "ok"})]
    server.streams["job-1"] = [("complete", status("job-1", "completed", output={"markdown": "ok"}))]

    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf")
            completed = []
            subscription = job.subscribe(on_complete=completed.append)
            created_a, created_b, result, created_c = await asyncio.gather(job, job.resolve(), job.wait(), job)
            await subscription.wait_closed()
            again = await job
            return created_a, created_b, created_c, again, result, completed

    created_a, created_b, created_c, again, result, completed = asyncio.run(scenario())
    assert server.creation_calls == 1
    assert created_a.job_id == created_b.job_id == created_c.job_id == again.job_id == "job-1"
    assert result.job_id == "job-1" and result.markdown == "ok"
    assert [s.id for s in completed] == ["job-1"]


def test_sequential_consumers_share_one_creation(server):
    server.statuses["job-1"] = [status("job-1", "completed", output={"markdown": "ok"})]

    async def scenario():
        async with connect(server) as client:
            job = client.parse_file(b"%PDF", "a.pdf")
            await job
            await job.wait()
            await job.wait()
            return await job.resolve()

    assert asyncio.run(scenario()).job_id == "job-1"
    assert server.creation_calls == 1
    assert server.poll_calls["job-1"] == 2


def test_configuration_before_trigger_is_sent_and_after_is_ignored(server):
    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf")
            job.with_ocr().with_tables().with_page_streaming().disable_caching()
            job.configure("images", True).configure("images", False)
            await job
            job.with_images().with_ocr(False).configure("caching", True)
            await job
            return job

    job = asyncio.run(scenario())
    assert server.creation_calls == 1
    assert server.created[0]["options"] == {
        "ocr": True,
        "tables": True,
        "images": False,
        "pageStreaming": True,
        "caching": False,
    }
    assert job.options.ocr is True
    assert job.options.images is False


def test_configuration_between_trigger_and_request_is_ignored(server):
    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf").with_tables()
            subscription = job.subscribe()
            job.with_ocr()
            subscription.close()
            await job

    asyncio.run(scenario())
    assert server.created[0]["options"]["tables"] is True
    assert server.created[0]["options"]["ocr"] is False


def test_configure_accepts_wire_alias_and_rejects_unknown_features(server):
    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf")
            job.configure("pageStreaming")
            assert job.options.page_streaming is True
            with pytest.raises(ValueError):
                job.configure("telepathy")

    asyncio.run(scenario())


def test_creation_failure_is_shared_by_all_consumers(server):
    async def scenario():
        async with connect(server, api_key="wrong-key") as client:
            job = client.parse_url("https://example.com/a.pdf")
            return await asyncio.gather(job.resolve(), job.wait(), return_exceptions=True)

    first, second = asyncio.run(scenario())
    assert first is second
    assert getattr(first, "status_code", None) == 401
    assert server.creation_calls == 0
    assert len(server.authorizations) == 1


def test_cancelling_one_consumer_does_not_cancel_creation(server):
    async def scenario():
        server.creation_gate = asyncio.Event()
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf")
            impatient = asyncio.ensure_future(job.resolve())
            await asyncio.sleep(0.01)
            impatient.cancel()
            server.creation_gate.set()
            created = await job
            return impatient, created

    impatient, created = asyncio.run(scenario())
    assert impatient.cancelled()
    assert created.job_id == "job-1"
    assert server.creation_calls == 1


def test_subscribe_rejects_mixed_callback_styles(server):
    async def scenario():
        async with connect(server) as client:
            job = client.parse_url("https://example.com/a.pdf")
            with pytest.raises(TypeError):
                job.subscribe(SubscriptionCallbacks(), on_status=print)
            assert not job.triggered

    asyncio.run(scenario())
