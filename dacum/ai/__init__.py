"""
DACUM engine AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, usage logging, embeddings)
    - similarity: tokenizer, Jaccard and cosine primitives
    - clustering: lexical / vector / generative card clustering
    - matching: CU-to-catalog semantic matching
    - prompt_registry: YAML prompt template loading
    - output: tolerant JSON extraction from model output
"""
