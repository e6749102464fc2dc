"""Job failure metrics."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector

KUBE_JOB_STATUS_FAILED = "kube_job_status_failed"


class KubeJobCollector(ClusterStateCollector):
    """Failed pod count per job.

    A job with no failures still yields one sample (empty reason, value 0).
    A failed job yields one sample per ``Failed`` condition carrying the
    condition reason, or a single empty-reason sample when it has none.
    """

    METRICS = {
        KUBE_JOB_STATUS_FAILED: (GAUGE, "The number of pods which reached Phase Failed and the reason for failure"),
    }

    def samples(self) -> Iterator[tuple[str, dict[str, str], float]]:
        for job in self._cache.get_all_jobs():
            base = {"job_name": job.name, "namespace": job.namespace, "uid": job.uid}
            failed = float(job.status.failed)
            reasons = [c.reason for c in job.status.conditions if c.type == "Failed"] if failed else []
            if not reasons:
                yield KUBE_JOB_STATUS_FAILED, {**base, "reason": ""}, failed
                continue
            for reason in reasons:
                yield KUBE_JOB_STATUS_FAILED, {**base, "reason": reason}, failed
