"""
Unit tests for single-flight admission control.
"""

import asyncio

import pytest

from ai_chat_guard.core.errors import ConcurrencyError
from ai_chat_guard.core.gate import GateState, RequestGate
from ai_chat_guard.core.messages import create_assistant_message
from ai_chat_guard.core.types import ChatResponse, ErrorType


class TestRequestGate:
    """Test gate state transitions."""

    def setup_method(self):
        self.gate = RequestGate()

    def test_starts_idle(self):
        assert self.gate.state is GateState.IDLE
        assert not self.gate.is_processing

    def test_admit_holds_gate(self):
        with self.gate.admit():
            assert self.gate.is_processing
            with pytest.raises(ConcurrencyError):
                with self.gate.admit():
                    pass
            assert self.gate.is_processing
        assert not self.gate.is_processing

    def test_released_after_exception(self):
        with pytest.raises(RuntimeError):
            with self.gate.admit():
                raise RuntimeError("handler failed")
        assert self.gate.state is GateState.IDLE

    @pytest.mark.asyncio
    async def test_overlapping_submit_rejected(self):
        release = asyncio.Event()
        handled = []

        async def handler(request):
            handled.append(request)
            await release.wait()
            return ChatResponse(message=create_assistant_message(f"done {request}"))

        first = asyncio.ensure_future(self.gate.submit(handler, "first"))
        await asyncio.sleep(0)
        assert self.gate.is_processing

        rejected = await self.gate.submit(handler, "second")
        assert rejected.error is not None
        assert rejected.error.type is ErrorType.VALIDATION
        assert rejected.error.code == "busy"
        assert "currently being processed" in rejected.message.content

        release.set()
        response = await first
        assert response.message.content == "done first"
        assert response.error is None
        assert handled == ["first"]
        assert not self.gate.is_processing

    @pytest.mark.asyncio
    async def test_sequential_submits_admitted(self):
        async def handler(request):
            return ChatResponse(message=create_assistant_message(request))

        first = await self.gate.submit(handler, "one")
        second = await self.gate.submit(handler, "two")
        assert first.error is None
        assert second.error is None
        assert second.message.content == "two"
