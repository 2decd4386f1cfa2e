# pipeline/ — driver scripts for the ATLAS residence patch analysis.
#
# Run scripts in order:
#   01_clean_tracks       → covariate + speed filters, median smooth, thinning → clean CSV
#   02_residence_patches  → residence time and patch segmentation per individual
#                           → patch CSV + GeoPackage
