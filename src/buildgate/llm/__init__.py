"""LLM subpackage: provider adapters, prompts and output parsing.

- providers: Provider protocol
- anthropic_provider: Anthropic Messages API adapter
- prompts: builder, schema-repair and interpreter prompts
- parsers: patch payload parsers, context-request and prose detection
- interpreter: prose-to-patch conversion
"""
