import asyncio
import socket
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

from network.channel import read_message  # type: ignore
from network.gate import (  # type: ignore
    GateState,
    InstanceGate,
    clipboard_server_name,
    monitor_server_name,
    server_name,
    startup_lock,
)


def test_server_name_is_per_user():
    env = {"USER": "alice", "USERNAME": "alice"}
    assert server_name("base", env) == "base_alice"
    assert clipboard_server_name(env) == "clipnest_server_alice"
    assert monitor_server_name(env) == "clipnest_monitor_server_alice"
    assert clipboard_server_name(env) != clipboard_server_name({"USER": "bob", "USERNAME": "bob"})


def test_exactly_one_instance_serves(tmp_path):
    received = []

    async def handler(reader, writer):
        received.append(await read_message(reader, timeout=1.0))
        writer.close()

    async def scenario():
        first = InstanceGate("gate", tmp_path, probe_timeout=0.5)
        second = InstanceGate("gate", tmp_path, probe_timeout=0.5)

        states = [
            await first.try_become_server(handler),
            await second.try_become_server(handler),
        ]
        await asyncio.sleep(0.1)
        await first.close()
        return states, second.server

    states, second_server = asyncio.run(scenario())

    assert states == [GateState.SERVING, GateState.YIELDED]
    assert second_server is None
    assert received == [b""]


def test_stale_socket_file_is_replaced(tmp_path):
    path = tmp_path / "stale"
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(path))
    sock.close()
    assert path.exists()

    async def handler(reader, writer):
        writer.close()

    async def scenario():
        gate = InstanceGate("stale", tmp_path, probe_timeout=0.5)
        state = await gate.try_become_server(handler)
        await gate.close()
        return state

    assert asyncio.run(scenario()) is GateState.SERVING
    assert not path.exists()


def test_independent_names_do_not_interfere(tmp_path):
    async def handler(reader, writer):
        writer.close()

    async def scenario():
        history = InstanceGate(server_name("history", {"USER": "u"}), tmp_path, probe_timeout=0.5)
        monitor = InstanceGate(server_name("monitor", {"USER": "u"}), tmp_path, probe_timeout=0.5)
        states = [
            await history.try_become_server(handler),
            await monitor.try_become_server(handler),
        ]
        await history.close()
        await monitor.close()
        return states

    assert asyncio.run(scenario()) == [GateState.SERVING, GateState.SERVING]


def test_simultaneous_start_has_one_winner(tmp_path):
    received = []

    async def handler(reader, writer):
        received.append(await read_message(reader, timeout=1.0))
        writer.close()

    async def scenario():
        gates = [InstanceGate("race", tmp_path, probe_timeout=0.5) for _ in range(3)]
        states = await asyncio.gather(*(gate.try_become_server(handler) for gate in gates))
        await asyncio.sleep(0.1)
        for gate in gates:
            await gate.close()
        return states

    states = asyncio.run(scenario())

    assert states.count(GateState.SERVING) == 1
    assert states.count(GateState.YIELDED) == 2
    assert received == [b"", b""]


def test_startup_lock_excludes_second_holder(tmp_path):
    path = tmp_path / "name.lock"

    async def scenario():
        async with startup_lock(path, timeout=1.0) as first:
            async with startup_lock(path, timeout=0.05) as second:
                nested = second
        async with startup_lock(path, timeout=0.05) as after:
            return first, nested, after

    assert asyncio.run(scenario()) == (True, False, True)
