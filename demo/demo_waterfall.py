"""
Demo: Estimate page metrics for a small synthetic page load.

Builds the dependency graph of a page with a document, a stylesheet, a
script that loads a hero image, a web font and a few main-thread tasks.
Then estimates FCP, LCP, LCP load delay and TTI under simulated mobile
slow 4G, and draws the simulated waterfall of the whole page.
"""

import logging
from pathlib import Path

import matplotlib.pyplot as plt

from lanternsim.analysis import summarize_timeline
from lanternsim.core import (
    CpuTask,
    Initiator,
    NetworkAnalyzer,
    NetworkRequest,
    ResourceTiming,
    ThrottlingSettings,
    build_page_graph,
    create_simulator,
)
from lanternsim.log import setup_logging
from lanternsim.metrics import NavigationContext, compute_metrics
from lanternsim.viz import plot_estimate_comparison, plot_waterfall, save_figure

DOC = "https://shop.example/"
APP = "https://shop.example/app.js"


def make_page():
    """Observed (unthrottled) load of a small page."""
    def timing(connect, ssl, ttfb):
        return ResourceTiming(connect_start=0, connect_end=connect, ssl_start=ssl, ssl_end=connect,
                              send_start=connect, send_end=connect + 1, receive_headers_end=ttfb)

    requests = [
        NetworkRequest("doc", DOC, 0, 320, priority="VeryHigh", resource_type="Document",
                       transfer_size=28000, connection_id="1", is_main_document=True,
                       timing=timing(90, 45, 210)),
        NetworkRequest("css", "https://shop.example/main.css", 230, 410, priority="VeryHigh",
                       resource_type="Stylesheet", transfer_size=18000, connection_id="2",
                       initiator=Initiator("parser", DOC), timing=timing(80, 40, 150)),
        NetworkRequest("app", APP, 240, 560, priority="High", resource_type="Script",
                       transfer_size=120000, connection_id="3",
                       initiator=Initiator("parser", DOC), timing=timing(84, 42, 160)),
        NetworkRequest("vendor", "https://cdn.shop.example/vendor.js", 250, 620, priority="Low",
                       resource_type="Script", transfer_size=90000, connection_id="4",
                       initiator=Initiator("parser", DOC), timing=timing(140, 70, 230)),
        NetworkRequest("font", "https://cdn.shop.example/brand.woff2", 430, 690, priority="VeryHigh",
                       resource_type="Font", transfer_size=40000, connection_id="4", connection_reused=True,
                       initiator=Initiator("parser", "https://shop.example/main.css"),
                       timing=ResourceTiming(send_start=0, send_end=1, receive_headers_end=110)),
        NetworkRequest("hero", "https://img.shop.example/hero.jpg", 700, 1150, priority="High",
                       resource_type="Image", transfer_size=210000, connection_id="5",
                       initiator=Initiator("script", APP), timing=timing(150, 75, 260)),
        NetworkRequest("thumb", "https://img.shop.example/thumb.jpg", 720, 980, priority="Low",
                       resource_type="Image", transfer_size=30000, connection_id="6",
                       initiator=Initiator("script", APP), timing=timing(150, 75, 240)),
    ]
    tasks = [
        CpuTask("parse", 210, 240, group="parse_html", attributable_urls=(DOC,)),
        CpuTask("style", 415, 440, group="style_layout", did_perform_layout=True),
        CpuTask("paint", 445, 450, group="paint", did_paint=True),
        CpuTask("eval-app", 570, 690, group="script_evaluation", attributable_urls=(APP,),
                initiated_request_ids=("hero", "thumb")),
        CpuTask("eval-vendor", 700, 880, group="script_evaluation",
                attributable_urls=("https://cdn.shop.example/vendor.js",)),
        CpuTask("layout", 1160, 1190, group="style_layout", did_perform_layout=True),
        CpuTask("paint-hero", 1195, 1200, group="paint", did_paint=True),
    ]
    navigation = NavigationContext(
        time_origin=0.0,
        first_contentful_paint=455.0,
        largest_contentful_paint=1205.0,
        lcp_image_url="https://img.shop.example/hero.jpg",
    )
    return requests, tasks, navigation


def main():
    setup_logging(logging.INFO)

    print("=" * 60)
    print("Lantern Page Load Simulation Demo")
    print("Estimating metrics under simulated mobile slow 4G")
    print("=" * 60)

    requests, tasks, navigation = make_page()

    print("\n1. Building the page dependency graph...")
    graph = build_page_graph(requests, tasks)
    print(f"   Network nodes: {len(graph.network_nodes())}")
    print(f"   CPU nodes:     {len(graph.cpu_nodes())}")
    print(f"   Root:          {graph.root.url}")

    print("\n2. Analyzing the observed network...")
    analysis = NetworkAnalyzer.analyze(requests)
    print(f"   RTT:        {analysis.rtt:.1f} ms")
    print(f"   Throughput: {analysis.throughput / 1024:.0f} KiB/s")
    for origin, extra in sorted(analysis.additional_rtt_by_origin.items()):
        if origin != NetworkAnalyzer.SUMMARY:
            print(f"   +{extra:5.1f} ms  {origin}")

    print("\n3. Simulating the whole page...")
    settings = ThrottlingSettings()
    simulator = create_simulator(settings, analysis)
    result = simulator.simulate(graph, label="mobile slow 4G")
    summary = summarize_timeline(graph, result)
    print(f"   Total:            {summary['total_time_ms']:.0f} ms")
    print(f"   Network time:     {summary['network_time_ms']:.0f} ms")
    print(f"   CPU time:         {summary['cpu_time_ms']:.0f} ms")
    print(f"   Max concurrency:  {summary['max_network_concurrency']}")

    print("\n4. Estimating metrics...")
    outcomes = compute_metrics(requests, tasks, navigation, settings, max_workers=4)
    print(f"\n   {'metric':<28} {'optimistic':>10} {'pessimistic':>12} {'estimate':>10}")
    print(f"   {'-' * 28} {'-' * 10} {'-' * 12} {'-' * 10}")
    for name, outcome in outcomes.items():
        if not outcome.ok:
            print(f"   {name:<28} failed: {outcome.error}")
            continue
        r = outcome.result
        print(f"   {name:<28} {r.optimistic_estimate.time_in_ms:>10.0f} "
              f"{r.pessimistic_estimate.time_in_ms:>12.0f} {r.timing:>10.0f}")

    print("\n5. Creating visualization...")
    output_dir = Path("output")
    output_dir.mkdir(exist_ok=True)

    lcp = outcomes["largest-contentful-paint"].result
    fig, _ = plot_waterfall(graph, result, marker_time=lcp.timing)
    save_figure(fig, output_dir / "waterfall.png")
    print(f"   Saved to: {output_dir / 'waterfall.png'}")

    fig, _ = plot_estimate_comparison(lcp)
    save_figure(fig, output_dir / "lcp_estimates.png")
    print(f"   Saved to: {output_dir / 'lcp_estimates.png'}")

    plt.show()

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)

    return outcomes


if __name__ == "__main__":
    main()
