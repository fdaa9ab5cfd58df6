"""
Parallel Executor - Runs one task per region concurrently with buffered logging
"""
import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple
from concurrent.futures import ThreadPoolExecutor, as_completed
from .region_log_buffer import RegionLogBuffer

logger = logging.getLogger(__name__)

RegionTask = Callable[[RegionLogBuffer], Any]


class ParallelExecutor:
    """Executes region tasks in parallel, joining after all of them finish"""

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers

    def execute(
        self,
        tasks: Dict[str, RegionTask],
        is_failure: Optional[Callable[[Any], bool]] = None,
        on_first_failure: Optional[Callable[[str], None]] = None,
        max_workers: Optional[int] = None
    ) -> Dict[str, Tuple[Any, Optional[Exception]]]:
        """Run every task and return (result, exception) per region, in task order.

        When on_first_failure is given it is called once, with the region name,
        as soon as a task raises or its result satisfies is_failure. max_workers
        overrides the pool size for this call.
        """
        if not tasks:
            return {}

        logger.info(f"Starting parallel execution across {len(tasks)} region(s)")

        buffers = {region: RegionLogBuffer(region) for region in tasks}
        outcomes: Dict[str, Tuple[Any, Optional[Exception]]] = {}
        failure_reported = threading.Event()

        def run_region(region: str):
            buffer = buffers[region]
            buffer.info(f"Starting region {region}")
            try:
                result = tasks[region](buffer)
            except Exception as e:
                buffer.error(f"Region {region} failed with exception: {e}")
                return None, e
            buffer.info(f"Region {region} finished")
            return result, None

        workers = max_workers or self.max_workers or len(tasks)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chaos-region") as executor:
            futures = {executor.submit(run_region, region): region for region in tasks}

            for future in as_completed(futures):
                region = futures[future]
                result, error = future.result()
                outcomes[region] = (result, error)

                failed = error is not None or (is_failure is not None and is_failure(result))
                if failed and on_first_failure is not None and not failure_reported.is_set():
                    failure_reported.set()
                    logger.warning(f"Region {region} failed first, notifying remaining regions")
                    on_first_failure(region)

        # Flush logs in region order
        for region in tasks:
            buffers[region].flush()

        failed_count = sum(
            1 for result, error in outcomes.values()
            if error is not None or (is_failure is not None and is_failure(result))
        )
        logger.info(f"Parallel execution complete: {len(tasks) - failed_count}/{len(tasks)} region(s) succeeded")

        return {region: outcomes[region] for region in tasks}
