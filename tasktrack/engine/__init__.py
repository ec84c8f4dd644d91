"""TaskTrack engine: config, errors, logging, context, security and the progress rollup."""
