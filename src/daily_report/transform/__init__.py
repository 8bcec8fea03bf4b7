"""Streaming transform of free-text daily reports into tab-delimited rows.

Submodules:
  patterns    -- compiled regex patterns and token constants
  prompts     -- instruction prompt builder
  sanitizer   -- fence / control-marker stripping, line by line
  projector   -- clean text -> rows of cells
  reconciler  -- [[MISSING: ...]] roster side-channel
  buffer      -- append-only accumulator with incrementally derived views
  errors      -- backend error union and local precondition errors
  classifier  -- backend failure -> user-facing category and cooldown
  backend     -- OpenAI-compatible streaming client
  session     -- run lifecycle, stream consumption, cooldown countdown
  cli         -- command-line entry point
"""
