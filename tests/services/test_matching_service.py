import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from userphone.services.call_manager import CallManager
from userphone.services.matching_service import QueueMatchingService


@pytest.fixture
def mock_manager() -> MagicMock:
    manager = MagicMock(spec=CallManager)
    manager.process_queue = AsyncMock(return_value=0)
    return manager


class TestQueueMatchingService:
    """Unit tests for QueueMatchingService."""

    @pytest.mark.asyncio
    async def test_run_once_returns_connected_count(
        self, mock_manager: MagicMock
    ) -> None:
        mock_manager.process_queue.return_value = 2
        service = QueueMatchingService(mock_manager)

        assert await service.run_once() == 2
        mock_manager.process_queue.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_loop_survives_failures_and_stops(
        self, mock_manager: MagicMock
    ) -> None:
        """Test that a failed pass is logged and the next pass still runs."""

        def fail_first_pass() -> int:
            if mock_manager.process_queue.await_count == 1:
                raise RuntimeError("cache down")
            return 0

        mock_manager.process_queue.side_effect = fail_first_pass
        service = QueueMatchingService(mock_manager, interval_secs=0)

        service.start()
        for _ in range(50):
            if mock_manager.process_queue.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await service.stop()

        assert mock_manager.process_queue.await_count >= 2
        assert service._task is None

    @pytest.mark.asyncio
    async def test_stop_without_start_is_a_no_op(
        self, mock_manager: MagicMock
    ) -> None:
        service = QueueMatchingService(mock_manager)
        await service.stop()
        mock_manager.process_queue.assert_not_called()
