"""Label and annotation keys understood by the admission controller."""

CLUSTER = "giantswarm.io/cluster"
CONTROL_PLANE = "giantswarm.io/control-plane"
MACHINE_DEPLOYMENT = "giantswarm.io/machine-deployment"
ORGANIZATION = "giantswarm.io/organization"
SERVICE_PRIORITY = "giantswarm.io/service-priority"
RELEASE = "release.giantswarm.io/version"
CLUSTER_OPERATOR_VERSION = "cluster-operator.giantswarm.io/version"
AWS_OPERATOR_VERSION = "aws-operator.giantswarm.io/version"
CAPI_CLUSTER_NAME = "cluster.x-k8s.io/cluster-name"

# Labels that change on every upgrade; excluded from value immutability.
VERSION_LABELS = (RELEASE, CLUSTER_OPERATOR_VERSION)

PROTECTED_LABEL_PART = "giantswarm.io"
PROVIDER_TAG_LABEL_PART = "tag.provider.giantswarm.io"

# Annotations
UPDATE_MAX_BATCH_SIZE = "alpha.aws.giantswarm.io/update-max-batch-size"
UPDATE_PAUSE_TIME = "alpha.aws.giantswarm.io/update-pause-time"
TERMINATE_UNHEALTHY = "alpha.node.giantswarm.io/terminate-unhealthy"
AWS_CNI_MINIMUM_IP_TARGET = "alpha.cni.aws.giantswarm.io/minimum-ip-target"
AWS_CNI_WARM_IP_TARGET = "alpha.cni.aws.giantswarm.io/warm-ip-target"
ETCD_VOLUME_IOPS = "aws.giantswarm.io/etcd-volume-iops"
ETCD_VOLUME_THROUGHPUT = "aws.giantswarm.io/etcd-volume-throughput"
UPGRADE_TARGET_TIME = "alpha.giantswarm.io/update-schedule-target-time"
UPGRADE_TARGET_RELEASE = "alpha.giantswarm.io/update-schedule-target-release"
CILIUM_POD_CIDR = "cilium.giantswarm.io/pod-cidr"
CILIUM_IPAM_MODE = "cilium.giantswarm.io/ipam-mode"
CILIUM_FORCE_DISABLE_KUBE_PROXY = "cilium.giantswarm.io/force-disable-kube-proxy"

CILIUM_IPAM_MODE_ENI = "eni"
CILIUM_IPAM_MODE_KUBERNETES = "kubernetes"

# Set by Flux on objects it applies from a Kustomization
FLUX_KUSTOMIZATION_NAME = "kustomize.toolkit.fluxcd.io/name"
FLUX_KUSTOMIZATION_NAMESPACE = "kustomize.toolkit.fluxcd.io/namespace"
