"""kubectl-setimg.

Change the image of a running Deployment container with:
 - tag discovery across ECR, GCR/Artifact Registry and Docker-style registries
 - creation-time enrichment of tags (bounded concurrent lookups)
 - an optional readiness watch that reverts the image on failure

Registry and cluster SDK calls are kept at the edges so the selection and
rollout policy can be tested without either.
"""
