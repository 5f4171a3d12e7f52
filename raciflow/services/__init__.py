"""
Business logic.

Pure process / RACI core (no Flask, no database):
    colors, entity_registry, process_graph, graph_normalizer,
    diagram_compiler, raci_aggregator, raci_export

Persistence-backed services:
    organization_service, process_service, raci_service
"""
