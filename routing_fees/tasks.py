import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

logger = logging.getLogger(__name__)


def run_task_graph(tasks, max_workers=8):
    """Run named tasks on a thread pool, each once its dependencies are done.

    `tasks` maps a name to `(dependencies, function)`. The function is called
    with a dict holding the results of its dependencies only. After the
    first failure no new task is started; tasks already running are allowed
    to finish and the first error is raised. Returns all results by name.
    """
    for name, (dependencies, _) in tasks.items():
        unknown = [d for d in dependencies if d not in tasks]
        if unknown:
            raise ValueError(f"Task {name} depends on unknown tasks: {unknown}")

    results = {}
    pending = dict(tasks)
    running = {}
    error = None

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        while pending or running:
            if error is None:
                ready = [
                    name
                    for name, (dependencies, _) in pending.items()
                    if all(d in results for d in dependencies)
                ]
                for name in ready:
                    dependencies, function = pending.pop(name)
                    logger.debug(f"Starting task {name}")
                    future = executor.submit(
                        function, {d: results[d] for d in dependencies}
                    )
                    running[future] = name

            if not running:
                break

            done, _ = wait(running, return_when=FIRST_COMPLETED)
            for future in done:
                name = running.pop(future)
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.debug(f"Task {name} failed: {e}")
                    if error is None:
                        error = e

    if error is not None:
        raise error

    if pending:
        raise ValueError(f"Tasks with circular dependencies: {sorted(pending)}")

    return results
