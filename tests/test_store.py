"""Tests for record stores and persistence backends."""

import json
import os
from datetime import datetime, timedelta

import pytest
from pydantic import BaseModel

from swarmlib.agent.messaging.models import BROADCAST, AgentMessage, MessageMetadata, MessageType
from swarmlib.agent.models.agent import AgentTask
from swarmlib.agent.shell_command.models import CommandResult, CommandStatus
from swarmlib.core.errors import StateError
from swarmlib.core.store import JsonFilePersistence, MemoryPersistence, RecordStore


class Item(BaseModel):
    id: str
    value: int = 0


def make_store(persistence=None, max_records=None):
    return RecordStore("items", Item, key=lambda i: i.id, persistence=persistence, max_records=max_records)


class TestRecordStore:
    """In-memory registry behavior."""

    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        store = make_store()
        await store.put(Item(id="a", value=1))
        assert store.get("a").value == 1
        assert "a" in store
        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert store.get("a") is None

    def test_list_keeps_insertion_order_and_filters(self):
        store = make_store()
        for i, key in enumerate(["c", "a", "b"]):
            store.put_nowait(Item(id=key, value=i))
        assert store.keys() == ["c", "a", "b"]
        assert [i.id for i in store.list(lambda i: i.value > 0)] == ["a", "b"]

    def test_cap_evicts_oldest(self):
        store = make_store(max_records=2)
        for key in ["a", "b", "c"]:
            store.put_nowait(Item(id=key))
        assert store.keys() == ["b", "c"]

    def test_empty_key_rejected(self):
        store = make_store()
        with pytest.raises(StateError):
            store.put_nowait(Item(id=""))

    def test_lock_is_per_key(self):
        store = make_store()
        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")


class TestPersistence:
    """Load-all/save-all round trips."""

    @pytest.mark.asyncio
    async def test_memory_persistence_round_trip(self):
        persistence = MemoryPersistence()
        store = make_store(persistence)
        await store.put(Item(id="a", value=5))

        reloaded = make_store(persistence)
        assert await reloaded.load() == 1
        assert reloaded.get("a").value == 5

    @pytest.mark.asyncio
    async def test_json_files_and_invalid_records(self, tmp_path):
        persistence = JsonFilePersistence(str(tmp_path))
        store = make_store(persistence)
        await store.put(Item(id="a", value=1))

        path = os.path.join(str(tmp_path), "items.json")
        with open(path) as f:
            records = json.load(f)
        records.append({"value": "not an item"})
        with open(path, "w") as f:
            json.dump(records, f)

        reloaded = make_store(persistence)
        assert await reloaded.load() == 1
        assert reloaded.get("a").value == 1

    @pytest.mark.asyncio
    async def test_corrupt_file_loads_empty(self, tmp_path):
        with open(os.path.join(str(tmp_path), "items.json"), "w") as f:
            f.write("{broken")
        store = make_store(JsonFilePersistence(str(tmp_path)))
        assert await store.load() == 0

    @pytest.mark.asyncio
    async def test_domain_records_survive_json_files(self, tmp_path):
        """Terminal results, tasks and messages reload with identical fields."""
        started = datetime.now()
        result = CommandResult(
            id="exec_1",
            command="echo hi",
            status=CommandStatus.COMPLETED,
            stdout="hi\n",
            exit_code=0,
            start_time=started,
            end_time=started + timedelta(milliseconds=15),
            duration=0.015,
            working_dir="/tmp",
            agent_id="a"
        )
        task = AgentTask(agent_id="a", description="summarize", sequence=3, delegated_from="b")
        task.start()
        task.log("Planned step: read", level="debug")
        task.complete({"summary": "ok", "action_results": [{"action": "send_message", "success": True}]})
        message = AgentMessage(
            from_agent_id="a",
            to_agent_id=BROADCAST,
            content="hello all",
            type=MessageType.REQUEST,
            metadata=MessageMetadata(priority="urgent", requires_response=True, task_id=task.id),
            read_by=["b"]
        )

        persistence = JsonFilePersistence(str(tmp_path))
        records = [("history", CommandResult, result), ("tasks", AgentTask, task), ("messages", AgentMessage, message)]
        for name, model, record in records:
            store = RecordStore(name, model, key=lambda r: r.id, persistence=persistence)
            await store.put(record)

        for name, model, record in records:
            reloaded = RecordStore(name, model, key=lambda r: r.id, persistence=JsonFilePersistence(str(tmp_path)))
            assert await reloaded.load() == 1
            assert reloaded.get(record.id) == record
