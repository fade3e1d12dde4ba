"""Read-only EC2 and CloudFormation queries using session role credentials."""
