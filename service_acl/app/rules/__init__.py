"""
Rule store, hierarchy resolution and LIFO evaluation.
"""
