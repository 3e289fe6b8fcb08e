"""
Demo: How connection limits and latency shape the page load.

Sweeps the round trip time for several per-origin connection limits and
simulates the same page (one document with many same-origin subresources)
each time. Fewer connections serialize the subresources; higher latency
makes every handshake and slow-start round trip more expensive.
"""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from lanternsim.analysis import concurrency_profile
from lanternsim.core import (
    CpuTask,
    Initiator,
    NetworkRequest,
    NodeType,
    Simulator,
    SimulatorConfig,
    build_page_graph,
)
from lanternsim.log import setup_logging
from lanternsim.viz import save_figure

DOC = "https://gallery.example/"


def make_gallery(n_images=24):
    """A document that loads n_images images from its own origin."""
    requests = [NetworkRequest("doc", DOC, 0, 200, priority="VeryHigh", resource_type="Document",
                               transfer_size=15000, is_main_document=True)]
    for i in range(n_images):
        requests.append(NetworkRequest(
            f"img-{i}", f"{DOC}img/{i}.jpg", 210 + i, 400 + i, priority="Low", resource_type="Image",
            transfer_size=40000, initiator=Initiator("parser", DOC),
        ))
    tasks = [CpuTask("parse", 200, 240, group="parse_html", attributable_urls=(DOC,))]
    return requests, tasks


def main():
    setup_logging(logging.WARNING)

    print("=" * 60)
    print("Connection Contention Demo")
    print("Total load time vs RTT for different per-origin limits")
    print("=" * 60)

    requests, tasks = make_gallery()
    graph = build_page_graph(requests, tasks)
    print(f"\n1. Page: 1 document + {len(graph.network_nodes()) - 1} images, {len(graph.cpu_nodes())} CPU task")

    rtts = np.array([20, 50, 100, 150, 200, 300])
    limits = [1, 2, 4, 6]
    times = np.zeros((len(limits), len(rtts)))

    print("\n2. Simulating...")
    print(f"\n   {'limit':>5} " + " ".join(f"{rtt:>7.0f}" for rtt in rtts))
    for i, limit in enumerate(limits):
        for j, rtt in enumerate(rtts):
            config = SimulatorConfig(rtt=float(rtt), throughput=1638.4 * 1024 / 8,
                                     max_connections_per_origin=limit)
            result = Simulator(config).simulate(graph, label=f"limit={limit} rtt={rtt}")
            times[i, j] = result.time_in_ms
            if limit == 2 and rtt == 150:
                profile = concurrency_profile(result, graph, node_type=NodeType.NETWORK)
                peak = profile.max_concurrency
        print(f"   {limit:>5} " + " ".join(f"{t:>7.0f}" for t in times[i]))

    print(f"\n   Peak concurrency with 2 connections at 150 ms: {peak}")
    speedup = times[0] / times[-1]
    print(f"   Speedup from 1 to 6 connections: {speedup.min():.2f}x - {speedup.max():.2f}x")

    print("\n3. Creating visualization...")
    fig, ax = plt.subplots(figsize=(8, 5))
    for i, limit in enumerate(limits):
        ax.plot(rtts, times[i] / 1000, marker="o", label=f"{limit} per origin")
    ax.set_xlabel("RTT (ms)")
    ax.set_ylabel("Simulated load time (s)")
    ax.set_title("Load time vs latency and connection limit")
    ax.grid(True, alpha=0.3)
    ax.legend()

    output_dir = Path("output")
    output_dir.mkdir(exist_ok=True)
    output_path = output_dir / "contention.png"
    save_figure(fig, output_path)
    print(f"   Saved to: {output_path}")

    plt.show()

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)

    return times


if __name__ == "__main__":
    main()
