"""HTTP routers: the pipeline endpoint and one endpoint per stage."""
