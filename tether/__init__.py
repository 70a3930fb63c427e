"""tether: HTTP/1.1 requests on supervised connection actors."""
