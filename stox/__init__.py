"""StoX: Stochastic multistage recruitment model for seed dispersal effectiveness.

A bootstrap Monte Carlo model coupling:
  - A stage tree of seed fates (dispersal, predation, germination, survival)
  - Empirical casting tables (one observed multinomial outcome per row)
  - Per-iteration propagation of an initial seed crop down the tree
  - Recruitment effectiveness estimates for every reported stage

Concept: M. Calviño-Cancela & J. Martín-Herrero (2009),
"Effectiveness of a varied assemblage of seed dispersers of a
fleshy-fruited plant", Ecology 90(12):3503-3515.
"""

__version__ = "3.1.0"
