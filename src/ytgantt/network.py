"""Dependency network topology: metrics, clusters, bottlenecks, health."""

from __future__ import annotations

from collections import Counter

import networkx as nx

from ytgantt.cycles import detect_cycle
from ytgantt.graph import DependencyGraph
from ytgantt.models import (
    Cluster,
    HealthScore,
    NetworkAnalysis,
    NetworkBottleneck,
    NetworkMetrics,
    Task,
)

BOTTLENECK_THRESHOLD = 3


def calculate_network_metrics(graph: DependencyGraph) -> NetworkMetrics:
    n = len(graph.task_ids)
    edges = graph.edge_count
    avg = edges / n if n > 0 else 0.0
    density = edges / (n * (n - 1)) if n > 1 else 0.0
    return NetworkMetrics(
        total_issues=n,
        total_dependencies=edges,
        avg_dependencies=round(avg, 2),
        density=density,
    )


def find_clusters(graph: DependencyGraph) -> list[Cluster]:
    """Connected components of the undirected view, singletons excluded."""
    G = graph.to_digraph().to_undirected()
    order = {node: i for i, node in enumerate(G)}
    clusters: list[Cluster] = []
    for component in nx.connected_components(G):
        if len(component) < 2:
            continue
        members = sorted(component, key=order.__getitem__)
        clusters.append(Cluster(id=f"cluster-{len(clusters) + 1}", issues=members))
    return clusters


def identify_bottlenecks(graph: DependencyGraph, tasks: list[Task]) -> list[NetworkBottleneck]:
    """Tasks that many others depend on, most depended-on first."""
    incoming = Counter(edge.target_id for edge in graph.all_edges())
    titles = {t.id: t.title for t in tasks}
    bottlenecks = [
        NetworkBottleneck(issue_id=tid, title=titles.get(tid) or "Unknown", incoming=count)
        for tid, count in incoming.items()
        if count >= BOTTLENECK_THRESHOLD
    ]
    bottlenecks.sort(key=lambda b: b.incoming, reverse=True)
    return bottlenecks


def calculate_health_score(metrics: NetworkMetrics, bottlenecks: list[NetworkBottleneck]) -> HealthScore:
    score = 100
    if metrics.density > 0.3:
        score -= 20
    score -= len(bottlenecks) * 10
    if metrics.avg_dependencies > 3:
        score -= 15
    score = max(0, score)

    if score >= 80:
        rating = "Excellent"
    elif score >= 60:
        rating = "Good"
    elif score >= 40:
        rating = "Fair"
    else:
        rating = "Poor"

    return HealthScore(
        score=score,
        rating=rating,
        factors={
            "networkDensity": metrics.density,
            "bottleneckCount": len(bottlenecks),
            "avgDependencies": metrics.avg_dependencies,
        },
    )


def network_visualization(graph: DependencyGraph) -> dict:
    """Node/edge lists in the shape vis.js network expects."""
    return {
        "nodes": [{"id": tid, "label": tid} for tid in graph.task_ids],
        "edges": [
            {
                "from": e.source_id,
                "to": e.target_id,
                "type": e.kind.value,
                "label": e.kind.value,
            }
            for e in graph.all_edges()
        ],
        "layout": "hierarchical",
        "format": "vis.js",
    }


def network_recommendations(metrics: NetworkMetrics, bottlenecks: list[NetworkBottleneck]) -> list[str]:
    recommendations: list[str] = []
    if metrics.density > 0.5:
        recommendations.append("High dependency density detected - consider simplifying relationships")
    if bottlenecks:
        recommendations.append(
            f"{len(bottlenecks)} bottleneck issues found - prioritize resolving these"
        )
    if metrics.avg_dependencies > 4:
        recommendations.append("High average dependencies - consider breaking down complex issues")
    if not recommendations:
        recommendations.append("Dependency network looks healthy")
    return recommendations


def analyze_network(graph: DependencyGraph, tasks: list[Task]) -> NetworkAnalysis:
    metrics = calculate_network_metrics(graph)
    bottlenecks = identify_bottlenecks(graph, tasks)
    return NetworkAnalysis(
        metrics=metrics,
        clusters=find_clusters(graph),
        bottlenecks=bottlenecks,
        health=calculate_health_score(metrics, bottlenecks),
        circular=detect_cycle(graph),
        visualization=network_visualization(graph),
        recommendations=network_recommendations(metrics, bottlenecks),
    )
