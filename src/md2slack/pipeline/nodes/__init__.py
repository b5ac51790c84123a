from md2slack.pipeline.nodes import generate, next_actions, prepare, render, review, summarize

__all__ = ["generate", "next_actions", "prepare", "render", "review", "summarize"]
