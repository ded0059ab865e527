"""HTTP interface: JSON and server-sent-event routes."""
