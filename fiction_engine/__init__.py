"""Interactive-fiction engine: intent resolution over a node-graph story.

The engine core is kept free of FastAPI concerns so it can be driven by API
routes, scripts and tests alike.
"""
