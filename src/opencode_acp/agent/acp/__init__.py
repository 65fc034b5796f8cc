"""ACP protocol handler mixins for OpencodeACPAgent."""
