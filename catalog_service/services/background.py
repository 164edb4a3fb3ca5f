import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)


class BackgroundTaskSupervisor:
    """
    요청과 분리된 fire-and-forget 작업 관리.
    응답은 작업 완료를 기다리지 않으며, 실패는 로그로만 남는다.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        # the event loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task cancelled.", extra={"task_name": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed.", extra={"task_name": task.get_name(), "error": str(exc)},
                         exc_info=(type(exc), exc, exc.__traceback__))

    async def drain(self, timeout: float = None):
        """종료 시 남은 작업 대기. timeout 이 지나면 나머지는 취소."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info("Draining background tasks.", extra={"pending": len(tasks)})
        done, not_done = await asyncio.wait(tasks, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning("Background tasks cancelled on drain.", extra={"cancelled": len(not_done)})


task_supervisor = BackgroundTaskSupervisor()


def get_task_supervisor() -> BackgroundTaskSupervisor:
    return task_supervisor
