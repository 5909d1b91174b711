"""Prometheus scrape job generation for prometheus.yml."""

from typing import Iterable
import logging

from nms_deployer.models.spec import ServiceTarget

RPC_NODE_LABEL = "rpc-node"


class TargetListGenerator:
    """Appends scrape job blocks to a rendered prometheus.yml document.

    Output is append-only and mirrors input order exactly; nothing is
    deduplicated or checked for reachability.
    """

    def __init__(self):
        self.logger = logging.getLogger("nms.targets")

    def append_static_job(self, doc: str, job_name: str, port: int) -> str:
        """Append a localhost scrape job for a managed component."""
        lines = [
            f" - job_name: '{job_name}'",
            "   static_configs:",
            f"     - targets: ['localhost:{port}']",
            "   scheme: http",
        ]
        self.logger.debug(f"Appending static job {job_name} on port {port}")
        return self._append(doc, lines)

    def append_service_targets(self, doc: str, services: Iterable[ServiceTarget]) -> str:
        """Append one scrape job per discovered service, in input order."""
        lines = []
        count = 0
        for service in services:
            lines += [
                f" - job_name: '{service.service_name}'",
                "   static_configs:",
                f"     - targets: ['{service.ip}:{service.port}']",
                "       labels:",
                f"         service: '{service.label}'",
            ]
            if service.label == RPC_NODE_LABEL:
                lines.append(f"         network: '{service.network}'")
            lines += [
                f"   metrics_path: {service.path}",
                f"   scheme: {service.protocol}",
            ]
            count += 1

        self.logger.debug(f"Appending {count} service target job(s)")
        return self._append(doc, lines)

    @staticmethod
    def _append(doc: str, lines: list[str]) -> str:
        if not lines:
            return doc
        if doc and not doc.endswith("\n"):
            doc += "\n"
        return doc + "\n".join(lines) + "\n"
