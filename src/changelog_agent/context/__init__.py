"""Context-building modules for gathering commit data.

These modules fetch data from external sources (GitHub) and assemble it
into the structures the changelog tools serve to the LLM.
"""
