import asyncio
import json

from rps_service.config.settings import Config
from rps_service.core.gesture import Gesture
from rps_service.core.state_machine import RoundController
from rps_service.server import RPSServer, WebSocketMessage

from conftest import (
    PROBA,
    FailingClassifier,
    FakeLocator,
    FakeSource,
    FixedClassifier,
    make_image,
)


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        pass


def make_server(source=None):
    controller = RoundController(
        source=source or FakeSource(make_image()),
        locator=FakeLocator(),
        classifier=FixedClassifier(PROBA[Gesture.ROCK]),
        computer_strategy=lambda: Gesture.SCISSORS
    )
    return RPSServer(Config(), controller=controller)


def handle(server, websocket, payload):
    message = payload if isinstance(payload, str) else json.dumps(payload)
    asyncio.run(server._handle_message(websocket, message))


def test_message_json_round_trip():
    message = WebSocketMessage(type="score", timestamp=1.5, data={"player": 1})
    assert WebSocketMessage.from_json(message.to_json()) == message


def test_ping_pong():
    server, ws = make_server(), FakeWebSocket()
    handle(server, ws, {"type": "ping"})
    assert ws.sent[0]["type"] == "pong"


def test_manual_play_replies_with_result():
    server, ws = make_server(), FakeWebSocket()
    handle(server, ws, {"type": "play"})

    reply = ws.sent[0]
    assert reply["type"] == "round_result"
    assert reply["data"]["outcome"] == "win"
    assert reply["data"]["player"]["gesture"] == "rock"
    assert server.controller.score.player == 1


def test_play_without_frame_is_skipped():
    server, ws = make_server(FakeSource(None)), FakeWebSocket()
    handle(server, ws, {"type": "play"})

    assert ws.sent[0]["data"] == {"skipped": True}
    assert server.controller.score.total == 0


def test_get_score_and_auto_play_toggle():
    server, ws = make_server(), FakeWebSocket()
    handle(server, ws, {"type": "play"})
    handle(server, ws, {"type": "set_auto_play", "data": {"enabled": False}})
    handle(server, ws, {"type": "get_score"})

    assert server.auto_play is False
    score = ws.sent[-1]
    assert score["type"] == "score"
    assert score["data"]["score"] == {"player": 1, "computer": 0, "ties": 0}
    assert score["data"]["rounds_played"] == 1
    assert score["data"]["auto_play"] is False


def test_invalid_json_is_ignored():
    server, ws = make_server(), FakeWebSocket()
    handle(server, ws, "{not json")
    handle(server, ws, {"type": "unknown"})
    assert ws.sent == []


def test_round_events_broadcast_to_clients():
    server = make_server()
    ws = FakeWebSocket()

    async def scenario():
        await server.start()
        server._clients.add(ws)
        await server.play("timer")
        # 等待线程安全调度的广播完成
        for _ in range(50):
            if any(m["data"]["event_type"] == "resolved" for m in ws.sent):
                break
            await asyncio.sleep(0.01)
        await server.stop()

    asyncio.run(scenario())

    types = [m["data"]["event_type"] for m in ws.sent if m["type"] == "round_event"]
    assert types[0] == "state"
    assert "resolved" in types

def wait_until(predicate, attempts=200):
    async def waiter():
        for _ in range(attempts):
            if predicate():
                return True
            await asyncio.sleep(0.01)
        return False
    return waiter()


def test_auto_play_survives_failed_rounds():
    strategy_calls = []

    def flaky_strategy():
        strategy_calls.append(1)
        if len(strategy_calls) == 1:
            raise RuntimeError("strategy crashed")
        return Gesture.SCISSORS

    config = Config()
    config.round.interval_s = 0.01
    failing = FailingClassifier(error=RuntimeError("backend crashed"))
    controller = RoundController(
        source=FakeSource(make_image()),
        locator=FakeLocator(),
        classifier=failing,
        computer_strategy=flaky_strategy
    )
    server = RPSServer(config, controller=controller)

    async def scenario():
        await server.start()
        task = asyncio.create_task(server._auto_play())
        server._tasks.append(task)

        # 推理后端崩溃只中止当前回合
        assert await wait_until(lambda: failing.calls >= 2)
        assert not task.done()

        # 回合内未预期的异常也不会终止定时任务
        controller.classifier = FixedClassifier(PROBA[Gesture.ROCK])
        assert await wait_until(lambda: controller.rounds_played >= 1)
        assert not task.done()

        await server.stop()

    asyncio.run(scenario())

    assert len(strategy_calls) >= 2
    assert controller.score.total == controller.rounds_played
