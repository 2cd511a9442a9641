"""End-to-end tests for OnWriteProcessor against the in-memory store.

Every write the processor makes is delivered back to it as a change, so
these tests exercise the full guard chain: order stamp -> PROCESSING ->
terminal, with every echo ignored.
"""

import asyncio
import json
from typing import Any

import pytest

from docproc.processor import (
    OnWriteProcessor,
    ProcessingStats,
    ProcessorConfig,
    create_processor,
)
from docproc.store import Change, DocumentNotFoundError, InMemoryStore, StoredSnapshot


async def _echo(value: Any) -> dict[str, Any]:
    return {"output": value}


async def _boom(value: Any) -> Any:
    raise RuntimeError("boom")


def _run_scenario(store: InMemoryStore, processor: OnWriteProcessor, data: dict[str, Any]) -> str:
    """Wire the processor as a trigger, create one record, wait for quiescence."""

    async def scenario() -> str:
        store.on_write(processor)
        ref = await store.add("test", data)
        await store.drain()
        return ref.path

    return asyncio.run(scenario())


class TestScenarios:
    """Observed write sequences for a single record."""

    def test_runs_when_not_given_order_field(self, store, write_log) -> None:
        processor = create_processor("input", _echo, error_fn=json.dumps)

        path = _run_scenario(store, processor, {"input": "test"})
        writes = write_log.for_path(path)

        # caller's create, then order stamp, PROCESSING, COMPLETED
        assert len(writes) == 4
        assert writes[0] == {"input": "test"}
        assert set(writes[1]) == {"input", "createTime"}
        create_time = writes[1]["createTime"]

        processing = writes[2]
        assert processing == {
            "input": "test",
            "createTime": create_time,
            "status": {
                "state": "PROCESSING",
                "startTime": processing["status"]["startTime"],
                "updateTime": processing["status"]["updateTime"],
            },
        }
        assert processing["status"]["startTime"] == processing["status"]["updateTime"]

        completed = writes[3]
        assert completed == {
            "input": "test",
            "output": "test",
            "createTime": create_time,
            "status": {
                "state": "COMPLETED",
                "startTime": processing["status"]["startTime"],
                "updateTime": completed["status"]["updateTime"],
                "completeTime": completed["status"]["completeTime"],
            },
        }
        assert completed["status"]["updateTime"] == completed["status"]["completeTime"]
        assert completed["status"]["startTime"] <= completed["status"]["updateTime"]
        assert store.trigger_errors == []

    def test_runs_when_given_order_field(self, store, write_log) -> None:
        custom_create_time = "2026-01-01T00:00:00.000Z"
        processor = create_processor("input", _echo)

        path = _run_scenario(store, processor, {"input": "test", "createTime": custom_create_time})
        writes = write_log.for_path(path)

        # no order stamp: caller's create, PROCESSING, COMPLETED
        assert len(writes) == 3
        assert writes[0] == {"input": "test", "createTime": custom_create_time}
        assert writes[1]["status"]["state"] == "PROCESSING"
        assert writes[1]["createTime"] == custom_create_time
        assert writes[2]["status"]["state"] == "COMPLETED"
        assert writes[2]["createTime"] == custom_create_time
        assert writes[2]["output"] == "test"

    def test_transform_failure_records_error(self, store, write_log) -> None:
        processor = create_processor("input", _boom)

        path = _run_scenario(store, processor, {"input": "test", "createTime": "t0"})
        final = write_log.for_path(path)[-1]

        assert final["status"]["state"] == "ERRORED"
        assert final["status"]["error"] == "boom"
        assert final["status"]["updateTime"] == final["status"]["errorTime"]
        assert "output" not in final
        assert "completeTime" not in final["status"]
        assert store.trigger_errors == []

    def test_error_fn_renders_payload(self, store, write_log) -> None:
        processor = create_processor("input", _boom, error_fn=lambda e: {"message": str(e)})

        path = _run_scenario(store, processor, {"input": "test"})

        assert write_log.for_path(path)[-1]["status"]["error"] == {"message": "boom"}

    def test_record_without_input_is_left_alone(self, store, write_log) -> None:
        processor = create_processor("input", _echo)

        path = _run_scenario(store, processor, {"prompt": "test"})

        assert write_log.for_path(path) == [{"prompt": "test"}]

    def test_sync_transform_is_supported(self, store, write_log) -> None:
        processor = create_processor("input", lambda value: value.upper())

        path = _run_scenario(store, processor, {"input": "test"})
        final = write_log.for_path(path)[-1]

        assert final["output"] == "TEST"
        assert final["status"]["state"] == "COMPLETED"

    def test_custom_field_names(self, store, write_log) -> None:
        processor = create_processor(
            "prompt",
            _echo,
            order_field="queuedAt",
            status_field="job",
        )

        path = _run_scenario(store, processor, {"prompt": "hi"})
        final = write_log.for_path(path)[-1]

        assert final["job"]["state"] == "COMPLETED"
        assert "queuedAt" in final
        assert "createTime" not in final
        assert "status" not in final

    def test_reserved_field_in_result_errors(self, store, write_log) -> None:
        async def clobber(value: Any) -> dict[str, Any]:
            return {"output": value, "input": "changed"}

        processor = create_processor("input", clobber)

        path = _run_scenario(store, processor, {"input": "test"})
        final = write_log.for_path(path)[-1]

        assert final["input"] == "test"
        assert final["status"]["state"] == "ERRORED"
        assert "input" in final["status"]["error"]

    def test_dotted_result_keys_cannot_reach_owned_fields(self, store, write_log) -> None:
        async def leak(value: Any) -> dict[str, Any]:
            return {"output": value, "createTime.x": 1, "status.error": "leak"}

        processor = create_processor("input", leak)

        path = _run_scenario(store, processor, {"input": "t", "createTime": "T0"})
        final = write_log.for_path(path)[-1]

        assert final["createTime"] == "T0"
        assert final["status"]["state"] == "ERRORED"
        assert final["status"]["error"] != "leak"
        assert "output" not in final

    def test_returned_exception_object_is_output(self, store, write_log) -> None:
        value = ValueError("just a value")

        async def returns_exception(input_value: Any) -> Any:
            return value

        processor = create_processor("input", returns_exception)

        path = _run_scenario(store, processor, {"input": "t"})
        final = write_log.for_path(path)[-1]

        assert final["status"]["state"] == "COMPLETED"
        assert isinstance(final["output"], ValueError)
        assert str(final["output"]) == "just a value"
        assert "error" not in final["status"]


class TestGuards:
    """Duplicate and echo deliveries never cause extra writes."""

    def test_redelivered_processing_snapshot_writes_nothing(self, store, write_log) -> None:
        processor = create_processor("input", _echo)

        path = _run_scenario(store, processor, {"input": "test"})
        processing = write_log.for_path(path)[2]
        count = len(write_log)

        snapshot = StoredSnapshot(store, path, processing)
        asyncio.run(processor.run(Change(before=snapshot, after=snapshot)))

        assert len(write_log) == count

    def test_redelivered_terminal_change_does_not_retry(self, store, write_log) -> None:
        processor = create_processor("input", _boom)

        path = _run_scenario(store, processor, {"input": "test"})
        writes = write_log.for_path(path)
        count = len(write_log)

        change = Change(
            before=StoredSnapshot(store, path, writes[-2]),
            after=StoredSnapshot(store, path, writes[-1]),
        )
        asyncio.run(processor.run(change))

        assert len(write_log) == count

    def test_deletion_is_ignored(self, store, write_log) -> None:
        processor = create_processor("input", _echo)

        async def scenario() -> str:
            store.on_write(processor)
            ref = await store.add("test", {"input": "test"})
            await store.drain()
            await ref.delete()
            await store.drain()
            return ref.path

        path = asyncio.run(scenario())

        assert write_log.for_path(path)[-1] is None
        assert len(write_log.for_path(path)) == 5
        assert store.trigger_errors == []


class TestHooks:
    """Pre/post hooks run at the right points in the protocol."""

    def test_hooks_run_before_their_writes(self, store) -> None:
        seen: dict[str, Any] = {}

        async def pre(snapshot) -> None:
            current = await store.document(snapshot.path).get()
            seen["pre"] = current.get("status")

        def post(snapshot) -> None:
            seen["post"] = store.read(snapshot.path).get("status.state")

        processor = create_processor(
            "input", _echo, pre_process_hook=pre, post_process_hook=post
        )

        _run_scenario(store, processor, {"input": "test"})

        assert seen == {"pre": None, "post": "PROCESSING"}

    def test_post_hook_not_called_on_failure(self, store) -> None:
        stats = ProcessingStats()
        processor = create_processor(
            "input",
            _boom,
            pre_process_hook=stats.pre_process,
            post_process_hook=stats.post_process,
        )

        _run_scenario(store, processor, {"input": "test"})

        assert stats.started == 1
        assert stats.completed == 0
        assert stats.unfinished == 1

    def test_post_hook_failure_records_error(self, store, write_log) -> None:
        def post(snapshot) -> None:
            raise RuntimeError("audit sink down")

        processor = create_processor("input", _echo, post_process_hook=post)

        path = _run_scenario(store, processor, {"input": "test"})
        writes = write_log.for_path(path)

        assert [(w.get("status") or {}).get("state") for w in writes] == [
            None, None, "PROCESSING", "ERRORED",
        ]
        assert writes[-1]["status"]["error"] == "audit sink down"
        assert "output" not in writes[-1]
        assert store.trigger_errors == []

    def test_pre_hook_failure_propagates_without_writes(self, store, write_log) -> None:
        def pre(snapshot) -> None:
            raise ValueError("metrics down")

        processor = create_processor("input", _echo, pre_process_hook=pre)

        async def scenario() -> StoredSnapshot:
            ref = await store.add("test", {"input": "test", "createTime": "t0"})
            return await ref.get()

        snapshot = asyncio.run(scenario())
        count = len(write_log)

        with pytest.raises(ValueError, match="metrics down"):
            asyncio.run(processor.run(Change(after=snapshot)))

        assert len(write_log) == count


class TestStoreFailures:
    """Store write failures are not swallowed."""

    def test_deleted_mid_flight_propagates(self, store) -> None:
        async def delete_then_return(value: Any) -> dict[str, Any]:
            await store.document(snapshot.path).delete()
            return {"output": value}

        processor = create_processor("input", delete_then_return)

        async def scenario() -> StoredSnapshot:
            ref = await store.add("test", {"input": "test", "createTime": "t0"})
            return await ref.get()

        snapshot = asyncio.run(scenario())

        with pytest.raises(DocumentNotFoundError):
            asyncio.run(processor.run(Change(after=snapshot)))

    def test_trigger_runtime_sees_failure(self, store) -> None:
        async def delete_then_fail(value: Any) -> Any:
            await store.document(path_holder["path"]).delete()
            raise RuntimeError("boom")

        path_holder: dict[str, str] = {}
        processor = create_processor("input", delete_then_fail)

        async def scenario() -> None:
            store.on_write(processor)
            ref = store.document("test/doc-1")
            path_holder["path"] = ref.path
            await ref.set({"input": "test", "createTime": "t0"})
            await store.drain()

        asyncio.run(scenario())

        assert len(store.trigger_errors) == 1
        path, error = store.trigger_errors[0]
        assert path == "test/doc-1"
        assert isinstance(error, DocumentNotFoundError)


class TestConcurrency:
    """Records are processed independently."""

    def test_slow_record_does_not_block_others(self, write_log) -> None:
        store = InMemoryStore()
        store.on_snapshot(write_log)
        release = {}

        async def transform(value: str) -> dict[str, Any]:
            if value == "slow":
                await release["event"].wait()
            return {"output": value}

        processor = create_processor("input", transform)

        async def scenario() -> dict[str, Any]:
            release["event"] = asyncio.Event()
            store.on_write(processor)
            slow = await store.add("test", {"input": "slow"})
            fast = [await store.add("test", {"input": f"fast-{i}"}) for i in range(3)]

            for _ in range(50):
                await asyncio.sleep(0)
            states = {
                ref.path: store.read(ref.path).get("status.state") for ref in [slow, *fast]
            }
            release["event"].set()
            await store.drain()
            states["final_slow"] = store.read(slow.path).get("status.state")
            return {"states": states, "slow": slow.path, "fast": [r.path for r in fast]}

        result = asyncio.run(scenario())
        states = result["states"]

        assert states[result["slow"]] == "PROCESSING"
        assert all(states[path] == "COMPLETED" for path in result["fast"])
        assert states["final_slow"] == "COMPLETED"

    def test_one_processor_serves_many_records(self, store, write_log) -> None:
        stats = ProcessingStats()
        processor = create_processor(
            "input",
            _echo,
            pre_process_hook=stats.pre_process,
            post_process_hook=stats.post_process,
        )

        async def scenario() -> list[str]:
            store.on_write(processor)
            refs = await asyncio.gather(*(store.add("test", {"input": i}) for i in range(10)))
            await store.drain()
            return [ref.path for ref in refs]

        paths = asyncio.run(scenario())

        assert stats.started == stats.completed == 10
        for path in paths:
            final = write_log.for_path(path)[-1]
            assert final["output"] == final["input"]
            assert len(write_log.for_path(path)) == 4


class TestProcessorConfig:
    def test_defaults(self) -> None:
        config = ProcessorConfig(input_field="input", process_fn=_echo)

        assert config.order_field == "createTime"
        assert config.status_field == "status"
        assert config.output_field == "output"
        assert config.error_fn is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"input_field": ""},
            {"order_field": "input"},
            {"status_field": "createTime"},
            {"output_field": "status"},
            {"process_fn": "not callable"},
            {"error_fn": 42},
            {"pre_process_hook": "nope"},
        ],
    )
    def test_invalid_config_raises(self, overrides) -> None:
        kwargs = {"input_field": "input", "process_fn": _echo, **overrides}

        with pytest.raises(ValueError):
            ProcessorConfig(**kwargs)
