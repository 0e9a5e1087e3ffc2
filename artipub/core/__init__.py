"""Publishing core: schema, planning, upload, session and retention propagation."""
