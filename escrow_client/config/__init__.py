"""
Client configuration.

- settings: runtime knobs from environment variables
- models: pydantic shapes of the YAML config files
- loader: file reading + RPC URL / program id resolution
"""
