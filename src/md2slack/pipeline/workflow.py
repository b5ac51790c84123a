"""LangGraph assembly of the six report stages."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from langgraph.graph import END, StateGraph

from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.nodes import generate, next_actions, prepare, render, review, summarize
from md2slack.pipeline.state import STAGE_NAMES, ReportState

logger = logging.getLogger(__name__)

StageFn = Callable[[ReportState, PipelineContext], ReportState]

STAGES: tuple[tuple[str, StageFn], ...] = (
    ("prepare", prepare.run),
    ("summarize", summarize.run),
    ("generate", generate.run),
    ("review", review.run),
    ("next_actions", next_actions.run),
    ("render", render.run),
)


def build_graph(ctx: PipelineContext):
    def _route(state: ReportState) -> str:
        return "failed" if state.get("error") else "next"

    graph = StateGraph(ReportState)
    for index, (name, fn) in enumerate(STAGES):
        graph.add_node(name, _stage(index, fn, ctx))

    graph.set_entry_point(STAGES[0][0])
    for (name, _), (next_name, _) in zip(STAGES, STAGES[1:]):
        graph.add_conditional_edges(name, _route, {"next": next_name, "failed": END})
    graph.add_edge(STAGES[-1][0], END)

    return graph.compile()


def _stage(index: int, fn: StageFn, ctx: PipelineContext) -> Callable[[ReportState], ReportState]:
    name = STAGE_NAMES[index]

    def run(state: ReportState) -> ReportState:
        ctx.progress.stage_start(index)
        started = time.perf_counter()
        try:
            update = fn(state, ctx)
        except Exception as exc:  # noqa: BLE001
            logger.exception("pipeline event=stage_failed stage=%d name=%s", index + 1, name)
            note = f"{name} failed: {exc}"
            ctx.progress.stage_failed(index, note)
            ctx.progress.error(note)
            return {"failed_stage": index, "error": str(exc), "note": note}

        duration_ms = (time.perf_counter() - started) * 1000.0
        durations = dict(state.get("durations_ms", {}))
        durations[name] = round(duration_ms, 2)
        note = update.get("note", "")
        logger.info(
            "pipeline event=stage_done stage=%d name=%s duration_ms=%.2f note=%s",
            index + 1,
            name,
            duration_ms,
            note,
        )
        ctx.progress.stage_done(index, note)
        return {**update, "durations_ms": durations}

    return run
