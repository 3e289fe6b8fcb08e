"""
Pytest configuration and shared fixtures.
"""

import matplotlib

matplotlib.use("Agg")

import pytest

from lanternsim.core.records import CpuTask, Initiator, NetworkRequest, ResourceTiming


@pytest.fixture
def make_request():
    """Factory for NetworkRequest with test-friendly defaults."""

    def factory(request_id, url="http://example.com/", start=0.0, end=100.0, **kwargs):
        kwargs.setdefault("priority", "High")
        kwargs.setdefault("resource_type", "Script")
        kwargs.setdefault("transfer_size", 1000)
        kwargs.setdefault("connection_id", request_id)
        return NetworkRequest(request_id=request_id, url=url, start_time=start, end_time=end, **kwargs)

    return factory


@pytest.fixture
def make_task():
    """Factory for CpuTask."""

    def factory(task_id, start, end, group="other", **kwargs):
        return CpuTask(task_id=task_id, start_time=start, end_time=end, group=group, **kwargs)

    return factory


@pytest.fixture
def page_requests():
    """
    A small page: document, stylesheet, script, font and a script-loaded hero image.

    example.com connections have TLS handshakes of 50/40/30 ms,
    the cdn connection 100 ms.
    """
    doc_url = "https://example.com/"
    script_url = "https://example.com/app.js"
    return [
        NetworkRequest(
            request_id="doc", url=doc_url, start_time=0, end_time=300,
            response_headers_end_time=200, priority="VeryHigh", resource_type="Document",
            transfer_size=20000, connection_id="1", is_main_document=True,
            timing=ResourceTiming(connect_start=0, connect_end=100, ssl_start=50, ssl_end=100,
                                  send_start=100, send_end=101, receive_headers_end=200),
        ),
        NetworkRequest(
            request_id="style", url="https://example.com/style.css", start_time=210, end_time=400,
            priority="VeryHigh", resource_type="Stylesheet", transfer_size=10000, connection_id="2",
            initiator=Initiator("parser", doc_url),
            timing=ResourceTiming(connect_start=0, connect_end=80, ssl_start=40, ssl_end=80,
                                  send_start=80, send_end=81, receive_headers_end=150),
        ),
        NetworkRequest(
            request_id="script", url=script_url, start_time=220, end_time=500,
            priority="High", resource_type="Script", transfer_size=50000, connection_id="3",
            initiator=Initiator("parser", doc_url),
            timing=ResourceTiming(connect_start=0, connect_end=60, ssl_start=30, ssl_end=60,
                                  send_start=60, send_end=61, receive_headers_end=160),
        ),
        NetworkRequest(
            request_id="font", url="https://cdn.example.com/font.woff2", start_time=450, end_time=700,
            priority="High", resource_type="Font", transfer_size=30000, connection_id="4",
            connection_reused=True, initiator=Initiator("parser", doc_url),
            timing=ResourceTiming(send_start=0, send_end=1, receive_headers_end=120),
        ),
        NetworkRequest(
            request_id="hero", url="https://cdn.example.com/hero.jpg", start_time=600, end_time=900,
            priority="Low", resource_type="Image", transfer_size=80000, connection_id="4",
            initiator=Initiator("script", script_url),
            timing=ResourceTiming(connect_start=0, connect_end=200, ssl_start=100, ssl_end=200,
                                  send_start=200, send_end=201, receive_headers_end=250),
        ),
    ]


@pytest.fixture
def page_tasks():
    """Main-thread tasks of the small page (t-tiny is below the 10 ms threshold)."""
    return [
        CpuTask("t-parse", 200, 220, group="parse_html", attributable_urls=("https://example.com/",)),
        CpuTask("t-tiny", 300, 302),
        CpuTask("t-eval", 510, 580, group="script_evaluation",
                attributable_urls=("https://example.com/app.js",), initiated_request_ids=("hero",)),
        CpuTask("t-layout", 590, 600, group="style_layout", did_perform_layout=True),
        CpuTask("t-paint", 950, 955, group="paint", did_paint=True),
    ]


@pytest.fixture
def page_navigation():
    from lanternsim.metrics.navigation import NavigationContext
    return NavigationContext(
        time_origin=0.0,
        first_contentful_paint=600.0,
        largest_contentful_paint=960.0,
        lcp_image_url="https://cdn.example.com/hero.jpg",
    )


@pytest.fixture
def page_graph(page_requests, page_tasks):
    from lanternsim.core.graph_builder import build_page_graph
    return build_page_graph(page_requests, page_tasks)


@pytest.fixture
def fast_config():
    """Simulator with 100 ms RTT, effectively unlimited bandwidth and no CPU slowdown."""
    from lanternsim.core.simulator import SimulatorConfig
    return SimulatorConfig(rtt=100.0, throughput=1e9, cpu_slowdown_multiplier=1.0)
