"""molineaux-sim: within-host malaria parasite density dynamics.

A day-stepped model of one infection's asexual parasite density under
innate, general adaptive, variant-specific and external (immunity/drug)
pressure, feeding a population-level epidemiological simulation:
  - Molineaux-family growth laws (variant competition, pairwise competition)
  - Seeded, reproducible random source
  - Statistical validation harness with golden-file regression checks
"""

__version__ = "0.1.0"
