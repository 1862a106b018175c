"""
protodeps: multi-repository protobuf dependency resolution and compilation.

Resolves proto schemas spread across git and filesystem repositories, expands
each requested schema to its transitive import closure with protoc itself, and
compiles the closure with a provisioned protoc (and optional gRPC plugin).
"""

__version__ = "0.4.0"
