# tempoagent

Configuration and span-enrichment pieces for a tracing agent.

The package has four modules:

- `tempoagent.config` reads the agent's `tempo` configuration section from
  YAML. It builds a collector-style pipeline definition from it: an OTLP
  exporter, the optional service-discovery, `attributes` and `batch`
  processors, and the configured receivers.
- `tempoagent.promsd` turns service-discovery target groups into a
  host-to-labels table. Each target is relabeled, the port is removed from its
  `__address__`, and labels that start with `__` are dropped. The table is
  then used to add labels to span resource attributes. Resources are matched
  by their `ip` attribute, or by `net.host.ip` when `ip` is absent.
- `tempoagent.relabel` holds the relabeling rules: `RelabelConfig`,
  `RelabelAction` and `process`.
- `tempoagent.defaults` provides `default_config_from_flags`. It fills an
  object with the defaults of the `argparse` flags that the object registers.

## Installation

```
pip install .
```

Install the test extra to run the tests:

```
pip install .[test]
pytest
```

## Building a pipeline configuration

```python
from tempoagent.config import load_config

cfg = load_config("""
receivers:
  jaeger:
    protocols:
      grpc:
push_config:
  endpoint: tempo.example.com:443
  basic_auth:
    username: user
    password: password
  batch:
    timeout: 5s
scrape_configs:
  - job_name: kubernetes
    relabel_configs:
      - source_labels: [__meta_kubernetes_namespace]
        target_label: namespace
""")

pipeline = cfg.otel_config()
print(pipeline["service"]["pipelines"]["traces"])
# {'exporters': ['otlp'], 'processors': ['prom_sd_processor', 'batch'], 'receivers': ['jaeger']}
```

`load_config` returns a `Config`. An empty document gives a disabled
configuration. Any section that is present is enabled. `Config.from_dict`
builds the same object from a mapping that is already parsed.

Each of the following raises `tempoagent.config.ConfigError`:

- invalid YAML or unknown fields;
- a section that is not enabled;
- no receiver, or no endpoint;
- a password file that cannot be read;
- a receiver, processor or exporter type that the pipeline does not know;
- scrape configurations that cannot be parsed.

Known receiver types are `jaeger`, `zipkin`, `otlp` and `opencensus`.
Known processor types are `queued_retry`, `batch`, `attributes` and
`prom_sd_processor`. The only exporter is `otlp`.

Basic authentication becomes an `authorization: Basic ...` header on the
exporter. When `password_file` is set, the password is read from that file.
If `retry_on_failure.max_elapsed_time` is not set, it defaults to `60s`.

## Enriching spans from service discovery

```python
from tempoagent.promsd import TargetGroup, create_trace_processor

received = []
processor = create_trace_processor(
    {
        "scrape_configs": [
            {
                "job_name": "job",
                "relabel_configs": [],
                "static_configs": [
                    {"targets": ["10.0.0.5:8080"], "labels": {"team": "infra"}},
                ],
            }
        ]
    },
    received.append,
)
processor.start()     # discovers the static targets in the background
processor.shutdown()  # waits for discovery to finish

attrs = {"ip": "10.0.0.5"}
processor.process_attributes(attrs)
assert attrs["team"] == "infra"

# Target groups can also be supplied directly; they replace the table.
processor.apply_target_groups({
    "job": [TargetGroup(targets=[{"__address__": "10.0.0.6", "team": "web"}])],
})
print(processor.host_labels)  # {'10.0.0.6': {'team': 'web'}}
```

`consume_traces` takes an iterable of resource-span mappings. It labels each
`resource["attributes"]` in place and then passes the traces to the next
consumer. A job's targets are labeled only if the job has `relabel_configs`,
even when that list is empty. Jobs without them are skipped with a warning.

## Relabeling

```python
from tempoagent.relabel import RelabelConfig, process

rules = [RelabelConfig.from_dict({"source_labels": ["env"], "regex": "dev", "action": "drop"})]
print(process({"env": "prod"}, rules))  # {'env': 'prod'}
print(process({"env": "dev"}, rules))   # None
```

The supported actions are `replace`, `keep`, `drop`, `hashmod`, `labelmap`,
`labeldrop` and `labelkeep`. An invalid rule raises `ValueError`.

## What the package does not do

- It receives no spans and sends nothing over the network. `otel_config`
  only produces the pipeline definition as a dictionary.
- Service discovery covers `static_configs` only. Any `*_sd_configs` entry
  is rejected with `ValueError`. Discovery runs once, when `start` is called.
- There is no command-line program.