"""CPU and memory used by the nginx processes on this host, via psutil."""

import logging

import psutil

from nginx_console.errors import ConsoleError

logger = logging.getLogger(__name__)

_ATTRS = ["name", "cmdline", "cpu_percent", "memory_info"]


def _is_worker(info: dict) -> bool:
    # workers retitle themselves "nginx: worker process"
    title = " ".join(info.get("cmdline") or []) or (info.get("name") or "")
    return "worker process" in title.lower()


def collect_metrics(process_name: str = "nginx") -> dict:
    """Sum CPU% and resident memory over every process whose name contains *process_name*.

    psutil reports 0.0 CPU for a process the first time it is sampled, so the
    first call after startup under-reports.
    """
    needle = process_name.lower()
    cpu = 0.0
    used = 0
    tasks = 0
    workers = 0
    try:
        for proc in psutil.process_iter(_ATTRS):
            info = proc.info
            if needle not in (info.get("name") or "").lower():
                continue
            tasks += 1
            cpu += info.get("cpu_percent") or 0.0
            mem = info.get("memory_info")
            if mem is not None:
                used += mem.rss
            if _is_worker(info):
                workers += 1
        total = psutil.virtual_memory().total
    except psutil.Error as e:
        raise ConsoleError(f"Failed to read system metrics: {e}") from e

    logger.debug("%d %s process(es), %d worker(s), cpu=%.1f%%", tasks, process_name,
                  workers, cpu)
    return {
        "cpu": round(cpu, 1),
        "total_memory": total,
        "used_memory": used,
        "tasks": tasks,
        "worker_count": workers,
    }
