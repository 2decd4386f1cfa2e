"""
ATLAS residence patches — shared Python package.

Contains the core logic for the track cleaning and residence patch pipeline:
  - atlas_residence.data.tracks          — raw fix table → Fix column contract
  - atlas_residence.features.cleaning    — covariate filters, speed, median smoothing, thinning
  - atlas_residence.residence.revisits   — per-fix revisitation runs
  - atlas_residence.residence.aggregate  — residence time up to the first long absence
  - atlas_residence.residence.patches    — spatial + temporal patch segmentation
  - atlas_residence.residence.summary    — patch tables and polygon collections
  - atlas_residence.residence.batch      — per-individual batch runner
  - atlas_residence.config               — YAML config loading
  - atlas_residence.logging_utils        — project-wide logger factory
  - atlas_residence.errors               — precondition errors
"""
