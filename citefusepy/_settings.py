# pylint: disable=C0114
# Defaults shared by the pure functions and the AnnData tools.

DEFAULT_K_NEIGHBORS = 20
DEFAULT_MU = 0.5
DEFAULT_MAX_ITER = 20
DEFAULT_MIX_FRACTION = 0.1
DEFAULT_SEED = 1

# absolute tolerance used by the AffinityMatrix invariants
SYMMETRY_ATOL = 1e-8

# AnnData slots
ADT_OBSM_KEY = "protein_expression"
RNA_AFFINITY_KEY = "rna_affinity"
ADT_AFFINITY_KEY = "adt_affinity"
FUSED_AFFINITY_KEY = "fused_affinity"
