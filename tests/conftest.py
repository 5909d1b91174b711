"""Global pytest fixtures and configuration."""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


COMPOSE_TEMPLATES = {
    "prometheus": (
        "services:\n"
        "  prometheus:\n"
        "    container_name: NMS_PROMETHEUS_NAME\n"
        "    command:\n"
        "      - '--config.file=/etc/prometheus/prometheus.yml'\n"
        "      - '--storage.tsdb.retention.time=NMS_PROMETHEUS_RETENTION_TIME'\n"
        "    ports:\n"
        "      - 'NMS_PROMETHEUS_PORT:9090'\n"
        "    volumes:\n"
        "      - NMS_INSTALL_PATH/configs/prometheus.yml:/etc/prometheus/prometheus.yml\n"
        "      - NMS_INSTALL_PATH/data/prometheus:/prometheus\n"
    ),
    "node_exporter": (
        "services:\n"
        "  node-exporter:\n"
        "    container_name: NMS_NODE_EXPORTER_NAME\n"
        "    ports:\n"
        "      - 'NMS_NODE_EXPORTER_PORT:9100'\n"
        "    volumes:\n"
        "      - NMS_INSTALL_PATH/configs:/configs:ro\n"
    ),
    "promtail": (
        "services:\n"
        "  promtail:\n"
        "    container_name: NMS_PROMTAIL_NAME\n"
        "    ports:\n"
        "      - 'NMS_PROMTAIL_PORT:9080'\n"
        "    volumes:\n"
        "      - NMS_INSTALL_PATH/configs/promtail.yml:/etc/promtail/config.yml\n"
        "      - NMS_INSTALL_PATH/data/promtail:/tmp\n"
    ),
    "cadvisor": (
        "services:\n"
        "  cadvisor:\n"
        "    container_name: NMS_CADVISOR_NAME\n"
        "    ports:\n"
        "      - 'NMS_CADVISOR_PORT:8080'\n"
        "    volumes:\n"
        "      - NMS_INSTALL_PATH/data:/rootfs:ro\n"
    ),
}

CONFIG_TEMPLATES = {
    "prometheus": (
        "global:\n"
        "  scrape_interval: 15s\n"
        "  external_labels:\n"
        "    host: 'NMS_HOST_LABEL'\n"
        "remote_write:\n"
        "  - url: NMS_METRICS_URL\n"
        "    basic_auth:\n"
        "      username: NMS_API_USERNAME\n"
        "      password: NMS_API_PASSWORD\n"
        "scrape_configs:\n"
        " - job_name: 'prometheus'\n"
        "   static_configs:\n"
        "     - targets: ['localhost:NMS_PROMETHEUS_PORT']\n"
    ),
    "promtail": (
        "server:\n"
        "  http_listen_port: NMS_PROMTAIL_PORT\n"
        "clients:\n"
        "  - url: NMS_LOGS_URL\n"
        "    tenant_id: NMS_API_ENDPOINT\n"
        "    basic_auth:\n"
        "      username: NMS_API_USERNAME\n"
        "      password: NMS_API_PASSWORD\n"
        "    external_labels:\n"
        "      host: NMS_HOST_LABEL\n"
    ),
    "node_exporter": "collectors:\n  - cpu\n  - meminfo\n",
    "cadvisor": "housekeeping_interval: 10s\n",
}


def write_bundle(root: Path, compose_overrides=None) -> Path:
    """Create a complete deployment-files bundle under root."""
    compose = dict(COMPOSE_TEMPLATES, **(compose_overrides or {}))
    (root / "config-templates").mkdir(parents=True)
    (root / "docker-compose-templates").mkdir()
    (root / "scripts").mkdir()

    for name, body in compose.items():
        (root / "docker-compose-templates" / f"{name}_compose_template.yml").write_text(body)
    for name, body in CONFIG_TEMPLATES.items():
        (root / "config-templates" / f"{name}_conf_template.yml").write_text(body)

    (root / "versions.env").write_text("PROMETHEUS_VERSION=v2.51.0\nPROMTAIL_VERSION=2.9.4\n")
    (root / "scripts" / "nms-service-restart.sh").write_text("#!/usr/bin/env bash\nexit 0\n")
    (root / "scripts" / "nms-service-upgrade.sh").write_text("#!/usr/bin/env bash\nexit 0\n")
    return root


@pytest.fixture
def compose_templates():
    return dict(COMPOSE_TEMPLATES)


@pytest.fixture
def config_templates():
    return dict(CONFIG_TEMPLATES)


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for test files."""
    yield tmp_path


@pytest.fixture
def bundle_dir(tmp_path):
    """Complete template bundle on disk."""
    return write_bundle(tmp_path / "nms-deployment-files")


@pytest.fixture
def make_bundle(tmp_path):
    """Factory for bundles with overridden compose templates."""

    def _make(name="custom-bundle", compose_overrides=None):
        return write_bundle(tmp_path / name, compose_overrides)

    return _make


@pytest.fixture
def sample_config():
    """Sample configuration JSON with every component and two services."""
    return {
        "hostname": "validator-01",
        "connection_config": {
            "metricsUrl": "https://metrics.example.com/api/v1/push",
            "logsUrl": "https://logs.example.com/loki/api/v1/push",
            "orgName": "acme",
            "apiUser": "acme-user",
            "apiPassword": "s3cret",
        },
        "stack_config": [
            {"name": "Prometheus", "port": 9090, "logRetentionTime": "15d"},
            {"name": "Node Exporter", "port": 9100},
            {"name": "Promtail", "port": 9080},
            {"name": "cAdvisor", "port": 8080},
        ],
        "service_config": [
            {
                "serviceName": "geth",
                "label": "rpc-node",
                "ip": "10.0.0.5",
                "port": 6060,
                "path": "/debug/metrics/prometheus",
                "protocol": "http",
                "network": "mainnet",
            },
            {
                "serviceName": "gateway",
                "label": "api",
                "ip": "10.0.0.6",
                "port": 9091,
                "path": "/metrics",
                "protocol": "https",
                "network": "mainnet",
            },
        ],
    }


@pytest.fixture
def config_file(tmp_path, sample_config):
    """Sample configuration written to disk."""
    path = tmp_path / "nms-config.json"
    path.write_text(json.dumps(sample_config))
    return path


@pytest.fixture
def mock_probe():
    """RuntimeProbe stand-in reporting no running containers."""
    probe = MagicMock()
    probe.any_managed_container_running = AsyncMock(return_value=False)
    probe.running_managed_containers = AsyncMock(return_value=[])
    return probe
