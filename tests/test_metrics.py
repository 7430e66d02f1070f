"""Tests for Prometheus instrumentation."""

from mymetas.metrics import (
    generate_metrics_output,
    record_db_operation,
    record_request,
    registry,
)


def sample(name: str, **labels: str) -> float:
    return registry.get_sample_value(name, labels) or 0.0


class TestMetrics:
    """Tests for the metric helpers."""

    def test_record_request(self):
        """Test requests are counted and timed per route template."""
        labels = {"status": "200", "path": "/metas/{meta_id}", "method": "GET"}
        before = sample("http_requests_total", **labels)
        observed = sample("http_request_duration_seconds_count", **labels)

        record_request("GET", "/metas/{meta_id}", 200, 0.01)

        assert sample("http_requests_total", **labels) == before + 1
        assert sample("http_request_duration_seconds_count", **labels) == observed + 1

    def test_record_db_operation(self):
        """Test failed writes are labelled as errors."""
        labels = {"operation": "insert", "table": "metas", "status": "error"}
        before = sample("database_operations_total", **labels)

        record_db_operation("insert", "metas", success=False)

        assert sample("database_operations_total", **labels) == before + 1

    def test_output_format(self):
        """Test the exposition output lists the declared metrics."""
        output = generate_metrics_output().decode()

        assert "http_requests_total" in output
        assert "metas_created_total" in output

    def test_api_counts_route_templates(self, client, alice):
        """Test the middleware labels requests with the matched route."""
        labels = {"status": "404", "path": "/metas/{meta_id}", "method": "GET"}
        before = sample("http_requests_total", **labels)

        client.get("/metas/999", headers=alice)

        assert sample("http_requests_total", **labels) == before + 1
