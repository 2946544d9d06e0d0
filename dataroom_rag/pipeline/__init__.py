"""
Pipeline modules for the dataroom RAG orchestrator.

Stage 0: Page validation     (page_validation.py)
Stage 1: Retrieval           (query_variants.py, retrieval.py)
Stage 2: Refinement          (refinement.py)
Stage 3: Answer synthesis    (sources + generation, via collaborators.py)

Orchestrated by: orchestrator.py
"""
