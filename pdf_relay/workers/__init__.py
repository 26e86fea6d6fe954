"""Background job machinery: registry, scheduler and worker pool."""
