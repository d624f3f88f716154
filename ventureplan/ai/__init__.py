"""
Venture Plan Workbench
AI module — context assembly and enrichment.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, local stub)
    - context_builder: typed context sources for document generation
    - enrichment: market / competitor / financial enrichment through the gateway
"""
