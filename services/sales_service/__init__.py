"""Sales service: order intake, order store and delivery-status tracking."""
