from typing import Literal

from langgraph.graph import END, START, StateGraph

from assessment_validator.pipeline.nodes import RequirementNodes
from assessment_validator.pipeline.state import RequirementState, has_error


def route_after_prompt(state: RequirementState) -> Literal["gather_context", "persist"]:
    """Sin prompt no hay nada que evaluar: directo a persistir el fallo."""
    return "persist" if has_error(state) else "gather_context"


def route_after_context(state: RequirementState) -> Literal["generate", "persist"]:
    return "persist" if has_error(state) else "generate"


def build_requirement_graph(nodes: RequirementNodes):
    """
    Compila el grafo de validacion de un requerimiento.

    Flujo: START → resolve_prompt → gather_context → generate → persist → END,
    saltando a persist en cuanto un nodo registra un error.
    """
    workflow = StateGraph(RequirementState)

    workflow.add_node("resolve_prompt", nodes.resolve_prompt)
    workflow.add_node("gather_context", nodes.gather_context)
    workflow.add_node("generate", nodes.generate)
    workflow.add_node("persist", nodes.persist)

    workflow.add_edge(START, "resolve_prompt")
    workflow.add_conditional_edges(
        "resolve_prompt",
        route_after_prompt,
        {
            "gather_context": "gather_context",
            "persist": "persist",
        },
    )
    workflow.add_conditional_edges(
        "gather_context",
        route_after_context,
        {
            "generate": "generate",
            "persist": "persist",
        },
    )
    workflow.add_edge("generate", "persist")
    workflow.add_edge("persist", END)

    return workflow.compile()
