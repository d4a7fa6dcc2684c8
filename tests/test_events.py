"""
Tests for event handlers, lifecycle events and cancellation.
"""

import asyncio

import pytest

from retroscript import ScriptEngine, HostServices, CancellationError

from conftest import script, make_engine, PendingDialogs


class TestEventHandlers:
    """Test `on` and `emit`."""

    @pytest.mark.asyncio
    async def test_handler_runs_after_main_body(self, engine):
        result = await engine.run(script("""
            on ping {
                print "got " + $event.n
            }
            emit ping n=1
            print "main done"
        """))
        assert result.success, result.error
        assert result.output == ["main done", "got 1"]

    @pytest.mark.asyncio
    async def test_handler_sees_event_name(self, engine):
        result = await engine.run(script("""
            on task:* {
                print $eventName
            }
            emit task:start
            emit task:end
        """))
        assert result.output == ["task:start", "task:end"]

    @pytest.mark.asyncio
    async def test_handler_closes_over_defining_scope(self, engine):
        result = await engine.run(script("""
            set $seen = []
            on item {
                call push($seen, $event)
            }
            on done {
                print $seen
            }
            emit item "a"
            emit item "b"
            emit done
        """))
        assert result.success
        assert result.output == ['["a","b"]']

    @pytest.mark.asyncio
    async def test_host_events_reach_handlers(self, engine, host):
        run = engine.start(script("""
            on desktop:ready {
                print "ready " + $event.user
            }
            wait 10
        """))
        await asyncio.sleep(0)
        host.events.publish("desktop:ready", {"user": "ann"})
        result = await run.wait()
        assert result.output == ["ready ann"]

    @pytest.mark.asyncio
    async def test_subscriptions_revoked_after_run(self, engine, host):
        result = await engine.run("on ping { print never }")
        assert result.success
        assert host.events.subscriber_count() == 0
        host.events.publish("ping")
        assert result.output == []

    @pytest.mark.asyncio
    async def test_handler_error_fails_the_run(self, engine, host):
        result = await engine.run(script("""
            on boom {
                call nothing()
            }
            emit boom
            print "main done"
        """))
        assert not result.success
        assert result.error.code == "E404"
        assert result.output == ["main done"]
        assert host.events.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_emit_payload_is_plain_data(self, engine, host):
        received = []
        host.events.subscribe("custom:ready", lambda name, payload: received.append(payload))
        result = await engine.run('emit custom:ready count=2 name="x" tags=[1, 2]')
        assert result.success
        assert received == [{"count": 2, "name": "x", "tags": [1, 2]}]


class TestLifecycleEvents:

    @pytest.mark.asyncio
    async def test_output_events(self, engine, host):
        await engine.run('print "hello"', script_id="greeter")
        assert host.events.events("script:output") == [
            {"scriptId": "greeter", "message": "hello"},
        ]

    @pytest.mark.asyncio
    async def test_complete_event(self, engine, host):
        result = await engine.run("return 42", script_id="answer")
        assert result.result == 42
        assert host.events.events("script:execute") == [{"scriptId": "answer", "source": "inline"}]
        assert host.events.events("script:complete") == [{"scriptId": "answer", "result": 42}]

    @pytest.mark.asyncio
    async def test_error_event(self, engine, host):
        await engine.run("print 1\nprint 1 / 0", script_id="bad")
        assert host.events.events("script:error") == [{
            "scriptId": "bad",
            "error": "division by zero",
            "kind": "runtime",
            "line": 2,
        }]

    @pytest.mark.asyncio
    async def test_notify_and_play(self, engine, host):
        await engine.run("notify Backup finished\nplay startup")
        assert host.events.events("notification:show") == [{"message": "Backup finished"}]
        assert host.events.events("sound:play") == [{"type": "startup"}]


class TestCancellation:
    """Test cancelling runs that are suspended or looping."""

    @pytest.mark.asyncio
    async def test_cancel_during_dialog(self, clock):
        dialogs = PendingDialogs()
        host = HostServices.in_memory(clock=clock, dialogs=dialogs)
        engine = ScriptEngine(host)
        run = engine.start(script("""
            on ping { print never }
            confirm "Continue?" into $ok
            print "answered"
        """))
        await dialogs.opened.wait()
        assert host.events.subscriber_count() == 1

        run.cancel()
        result = await run.wait()
        assert result.cancelled
        assert isinstance(result.error, CancellationError)
        assert result.output == []
        assert host.events.subscriber_count() == 0
        assert dialogs.answer.cancelled()
        assert host.events.events("script:error")[0]["kind"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_busy_loop(self, host):
        engine = ScriptEngine(host)
        run = engine.start("loop 1000000 { set $x = $i }")
        await asyncio.sleep(0)
        run.cancel()
        result = await run.wait()
        assert result.cancelled

    @pytest.mark.asyncio
    async def test_stop_all(self, clock):
        dialogs = PendingDialogs()
        engine = ScriptEngine(HostServices.in_memory(clock=clock, dialogs=dialogs))
        first = engine.start('confirm "one?" into $a')
        second = engine.start("loop 1000000 { set $x = $i }")
        await dialogs.opened.wait()
        assert sorted(engine.running) == sorted([first.script_id, second.script_id])

        assert engine.stop_all() == 2
        results = await asyncio.gather(first.wait(), second.wait())
        assert all(r.cancelled for r in results)
        assert engine.running == []

    @pytest.mark.asyncio
    async def test_cancel_finished_run_is_noop(self, engine):
        run = engine.start("print done")
        result = await run.wait()
        run.cancel()
        assert result.success

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source", [
        "loop 1e9 { }",
        "while true { }",
        "foreach $n in range(200000) { }",
    ])
    async def test_cancel_empty_loop(self, host, source):
        engine = make_engine(host, max_loop_iterations=10**9)
        run = engine.start(source)
        await asyncio.sleep(0)
        run.cancel()
        result = await run.wait()
        assert result.cancelled


class TestHandlerIsolation:
    """Test that handler bodies run to completion."""

    @pytest.mark.asyncio
    async def test_main_body_waits_for_running_handler(self, host):
        engine = make_engine(host, yield_interval=1)
        result = await engine.run(script("""
            set $log = []
            on ev {
                loop 5 { call push($log, "h") }
            }
            emit ev
            wait 0
            loop 5 { call push($log, "m") }
            print join($log, "")
        """))
        assert result.success, result.error
        assert result.output == ["hhhhhmmmmm"]

    @pytest.mark.asyncio
    async def test_suspended_handler_lets_main_body_continue(self, clock):
        dialogs = PendingDialogs()
        engine = ScriptEngine(HostServices.in_memory(clock=clock, dialogs=dialogs))
        run = engine.start(script("""
            set $log = []
            on ev {
                confirm "go?" into $ok
                call push($log, "h")
                print join($log, "")
            }
            emit ev
            wait 0
            loop 3 { call push($log, "m") }
            print "main done"
        """))
        await dialogs.opened.wait()
        for _ in range(20):
            await asyncio.sleep(0)
        assert run.ctx.output == ["main done"]

        dialogs.answer.set_result(True)
        result = await run.wait()
        assert result.success, result.error
        assert result.output == ["main done", "mmmh"]
